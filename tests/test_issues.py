"""
Tests for Issue Reporting

Tests cover:
- Issue creation with validation and attachments
- Listing and filtering
- Admin status triage
- Upvoting rules
- Comment threads
- Duplicate detection and merging
"""
import json

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.sse import connection_manager
from app.models.issue import Issue, IssueStatus
from app.models.user import User
from app.services.issue_service import IssueService, rank_similar
from tests.conftest import IssueFactory


class TestCreateIssue:

    @pytest.mark.asyncio
    async def test_issue_types(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.get("/api/issues/types", headers=auth_headers_member)

        assert response.json()["issueTypes"] == settings.ISSUE_TYPES

    @pytest.mark.asyncio
    async def test_create_issue(
        self,
        client: AsyncClient,
        auth_headers_member: dict,
        member_user: User,
        s3_client
    ):
        response = await client.post(
            "/api/issues",
            data={
                "issueType": "Feature Request",
                "title": "  Export to CSV  ",
                "description": "Add an export button to the assignments table",
                "practice": "Cloud",
            },
            files={"attachments": ("mockup.png", b"\x89PNG", "image/png")},
            headers=auth_headers_member
        )

        assert response.status_code == 201
        issue = response.json()["issue"]
        assert issue["issueNumber"] == 1
        assert issue["title"] == "Export to CSV"
        assert issue["status"] == "Open"
        assert issue["email"] == member_user.email
        assert issue["upvotes"] == 0
        assert issue["attachments"][0]["filename"] == "mockup.png"
        assert len(s3_client.objects) == 1

    @pytest.mark.asyncio
    async def test_title_too_long(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post(
            "/api/issues",
            data={"issueType": "General Question", "title": "x" * 101, "description": "Why?"},
            headers=auth_headers_member
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["loc"][-1] == "title"

    @pytest.mark.asyncio
    async def test_blank_description(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post(
            "/api/issues",
            data={"issueType": "General Question", "title": "Question", "description": "   "},
            headers=auth_headers_member
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_issue_type(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post(
            "/api/issues",
            data={"issueType": "Complaint", "title": "Hi", "description": "There"},
            headers=auth_headers_member
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_number_taken_by_concurrent_report(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        manager_user: User,
        monkeypatch
    ):
        await IssueFactory.create(db_session, email=manager_user.email)

        async def stale_next_number(self):
            return 1

        monkeypatch.setattr(IssueService, "next_number", stale_next_number)

        response = await client.post(
            "/api/issues",
            data={"issueType": "Technical Question", "title": "Broken link", "description": "404 on help"},
            headers=auth_headers_member
        )

        assert response.status_code == 409
        assert response.json()["success"] is False


class TestListIssues:

    @pytest.mark.asyncio
    async def test_filters(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User,
        manager_user: User
    ):
        mine = await IssueFactory.create(db_session, email=member_user.email)
        await IssueFactory.create(db_session, email=manager_user.email, status=IssueStatus.CLOSED)

        response = await client.get("/api/issues", params={"mine": True}, headers=auth_headers_member)
        assert [i["id"] for i in response.json()["issues"]] == [mine.id]

        response = await client.get("/api/issues", params={"status": "Closed"}, headers=auth_headers_member)
        assert [i["email"] for i in response.json()["issues"]] == [manager_user.email]


class TestIssueTriage:

    @pytest.mark.asyncio
    async def test_admin_updates_status(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_admin: dict,
        admin_user: User,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.put(
            f"/api/issues/{issue.id}/status",
            json={"status": "In Progress", "resolutionComment": "Scheduled for next sprint"},
            headers=auth_headers_admin
        )

        assert response.status_code == 200
        data = response.json()["issue"]
        assert data["status"] == "In Progress"
        assert data["resolutionComment"] == "Scheduled for next sprint"
        assert data["adminUsername"] == admin_user.name

    @pytest.mark.asyncio
    async def test_non_admin_cannot_update_status(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.put(
            f"/api/issues/{issue.id}/status",
            json={"status": "Closed"},
            headers=auth_headers_manager
        )

        assert response.status_code == 403


class TestUpvotes:

    @pytest.mark.asyncio
    async def test_upvote_once(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(f"/api/issues/{issue.id}/upvote", headers=auth_headers_manager)
        assert response.status_code == 200
        assert response.json()["issue"]["upvotes"] == 1

        response = await client.post(f"/api/issues/{issue.id}/upvote", headers=auth_headers_manager)
        assert response.status_code == 409

        response = await client.get("/api/issues", headers=auth_headers_manager)
        assert response.json()["upvotedIssueIds"] == [issue.id]

    @pytest.mark.asyncio
    async def test_cannot_upvote_own_issue(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(f"/api/issues/{issue.id}/upvote", headers=auth_headers_member)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_upvote_unknown_issue(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post("/api/issues/missing/upvote", headers=auth_headers_member)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_upvote_counts_from_database(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)
        # Votes landed through other sessions after this one loaded the issue
        await db_session.execute(
            update(Issue)
            .where(Issue.id == issue.id)
            .values(upvotes=5)
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()

        response = await client.post(f"/api/issues/{issue.id}/upvote", headers=auth_headers_manager)

        assert response.status_code == 200
        assert response.json()["issue"]["upvotes"] == 6


class TestIssueComments:

    @pytest.mark.asyncio
    async def test_comment_thread(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_admin: dict,
        auth_headers_member: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            f"/api/issues/{issue.id}/comments",
            data={"message": "Which browser are you using?"},
            headers=auth_headers_admin
        )
        assert response.status_code == 201
        assert response.json()["comment"]["isAdmin"] is True

        await client.post(
            f"/api/issues/{issue.id}/comments",
            data={"message": "Firefox"},
            headers=auth_headers_member
        )

        response = await client.get(f"/api/issues/{issue.id}/comments", headers=auth_headers_member)
        comments = response.json()["comments"]
        assert [c["message"] for c in comments] == ["Which browser are you using?", "Firefox"]
        assert comments[1]["userEmail"] == member_user.email

    @pytest.mark.asyncio
    async def test_attachment_only_comment(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User,
        s3_client
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            f"/api/issues/{issue.id}/comments",
            files={"attachments": ("screenshot.png", b"\x89PNG", "image/png")},
            headers=auth_headers_member
        )

        assert response.status_code == 201
        comment = response.json()["comment"]
        assert comment["message"] == ""
        assert comment["attachments"][0]["path"].startswith(f"issues/{issue.id}/comments/")
        assert len(s3_client.objects) == 1

    @pytest.mark.asyncio
    async def test_empty_comment_rejected(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            f"/api/issues/{issue.id}/comments",
            data={"message": "  "},
            headers=auth_headers_member
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Message or attachment is required"

    @pytest.mark.asyncio
    async def test_closed_issue_is_read_only(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_admin: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email, status=IssueStatus.CLOSED)

        response = await client.post(
            f"/api/issues/{issue.id}/comments",
            data={"message": "Reopening?"},
            headers=auth_headers_admin
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Cannot add comments to closed issues"

    @pytest.mark.asyncio
    async def test_comment_is_broadcast(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)
        conn = await connection_manager.connect("watcher", issue.id)

        try:
            await client.post(
                f"/api/issues/{issue.id}/comments",
                data={"message": "Still happening"},
                headers=auth_headers_member
            )

            message = conn.queue.get_nowait()
            assert message.startswith("event: issue_comment_added\n")
            payload = json.loads(message.split("data: ", 1)[1])
            assert payload["comment"]["message"] == "Still happening"
        finally:
            await connection_manager.disconnect(conn)


class TestDuplicateDetection:

    def test_rank_similar(self):
        scores = rank_similar(
            "Export button missing from assignments table",
            [
                "Assignments table export button is missing",
                "Calendar reminders arrive a day late",
            ]
        )

        assert scores[0] > 0.5
        assert scores[1] == 0.0

    def test_rank_similar_with_only_stop_words(self):
        assert rank_similar("the and", ["it is", "of the"]) == [0.0, 0.0]

    @pytest.mark.asyncio
    async def test_check_finds_open_lookalikes(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        original = await IssueFactory.create(db_session, email=member_user.email)
        await IssueFactory.create(
            db_session,
            email=member_user.email,
            title="Calendar invites arrive late",
            description="Training reminders show up a day after the session",
        )
        await IssueFactory.create(db_session, email=member_user.email, status=IssueStatus.CLOSED)

        response = await client.post(
            "/api/issues/check-duplicates",
            json={
                "title": "Export button missing",
                "description": "The assignments table has no export option",
            },
            headers=auth_headers_manager
        )

        assert response.status_code == 200
        similar = response.json()["similarIssues"]
        assert [i["id"] for i in similar] == [original.id]
        assert similar[0]["similarity"] == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_check_with_no_issues(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.post(
            "/api/issues/check-duplicates",
            json={"title": "Anything", "description": "At all"},
            headers=auth_headers_member
        )

        assert response.json() == {"success": True, "similarIssues": []}

    @pytest.mark.asyncio
    async def test_results_are_capped(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User,
        monkeypatch
    ):
        for _ in range(3):
            await IssueFactory.create(db_session, email=member_user.email)
        monkeypatch.setattr(settings, "ISSUE_DUPLICATE_LIMIT", 2)

        response = await client.post(
            "/api/issues/check-duplicates",
            json={"title": "Export button missing", "description": "No export option"},
            headers=auth_headers_manager
        )

        assert len(response.json()["similarIssues"]) == 2


class TestMergeDuplicate:

    @pytest.mark.asyncio
    async def test_merge_adds_comment_and_upvote(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        manager_user: User,
        member_user: User,
        s3_client
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": issue.id, "description": "Need CSV export for the weekly report"},
            files={"attachments": ("report.csv", b"a,b\n", "text/csv")},
            headers=auth_headers_manager
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Successfully merged with existing issue"
        assert data["upvoted"] is True
        assert data["issue"]["upvotes"] == 1
        assert data["commentId"] == data["comment"]["id"]
        assert data["comment"]["userEmail"] == manager_user.email
        assert data["comment"]["message"] == (
            "**Merged from duplicate submission:**\n\n"
            "Need CSV export for the weekly report\n\n"
            "*1 attachment(s) merged from duplicate submission*"
        )
        assert len(s3_client.objects) == 1

        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": issue.id, "description": "Same again"},
            headers=auth_headers_manager
        )
        assert response.json()["upvoted"] is False
        assert response.json()["issue"]["upvotes"] == 1

        response = await client.get(f"/api/issues/{issue.id}/comments", headers=auth_headers_manager)
        assert len(response.json()["comments"]) == 2

    @pytest.mark.asyncio
    async def test_reporter_merge_does_not_upvote(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_member: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": issue.id, "description": "Forgot I already filed this"},
            headers=auth_headers_member
        )

        assert response.status_code == 200
        assert response.json()["upvoted"] is False
        assert response.json()["issue"]["upvotes"] == 0

    @pytest.mark.asyncio
    async def test_merge_into_closed_issue(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email, status=IssueStatus.CLOSED)

        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": issue.id, "description": "Me too"},
            headers=auth_headers_manager
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_merge_requires_description(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers_manager: dict,
        member_user: User
    ):
        issue = await IssueFactory.create(db_session, email=member_user.email)

        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": issue.id, "description": " "},
            headers=auth_headers_manager
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_merge_into_unknown_issue(self, client: AsyncClient, auth_headers_manager: dict):
        response = await client.post(
            "/api/issues/merge-duplicate",
            data={"issueId": "missing", "description": "Me too"},
            headers=auth_headers_manager
        )

        assert response.status_code == 404
