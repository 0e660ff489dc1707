"""
Unit tests for grounding-data prefetch and Drive search-term derivation.
"""
import asyncio

import pytest

from brain.prefetch import DataPrefetcher, derive_drive_search_term, extract_drive_query, is_not_configured
from brain.skills import SkillRegistry
from brain.state import DataCategory

from conftest import FakeSearch, FakeWorkspace


@pytest.fixture
def prefetcher():
    return DataPrefetcher()


# =============================================================================
# Search-term Derivation
# =============================================================================

class TestDriveSearchTerm:
    """Tests for the analyze-mode Drive search term."""

    def test_search_for_invoices(self):
        assert derive_drive_search_term("can you search my drive for invoices") == "invoices"

    def test_check_drive_defaults_to_recent(self):
        assert derive_drive_search_term("check drive") == "recent"

    @pytest.mark.parametrize("message", ["show my files", "find it in drive", "look at my documents?"])
    def test_residual_too_short_or_stop_token(self, message):
        assert derive_drive_search_term(message) == "recent"

    def test_multi_word_term(self):
        assert derive_drive_search_term("please find the quarterly report in my drive") == "quarterly report"

    def test_words_containing_command_words_survive(self):
        assert derive_drive_search_term("find my onboarding checklist") == "onboarding checklist"


class TestDriveQuery:
    """Tests for the powerful-path Drive query."""

    def test_trailing_for_clause(self):
        assert extract_drive_query("look in my drive for the Q3 budget") == "the Q3 budget"

    def test_quoted_text(self):
        assert extract_drive_query('is "Roadmap 2025" in drive') == "Roadmap 2025"

    def test_residual(self):
        assert extract_drive_query("check my drive invoices") == "invoices"


# =============================================================================
# Powerful-path Prefetch
# =============================================================================

class TestPrefetch:
    """Tests for DataPrefetcher.prefetch()."""

    @pytest.mark.asyncio
    async def test_email_and_calendar_sections_in_order(self, prefetcher, workspace):
        skills = SkillRegistry(workspace=workspace)

        bundle = await prefetcher.prefetch("any email about the meeting today?", skills)

        assert bundle.labels == ["RECENT EMAILS", "TODAY'S CALENDAR"]
        workspace.get_recent_emails.assert_awaited_once_with(10)
        assert "=== RECENT EMAILS ===\nFrom: dana@example.com" in bundle.render()

    @pytest.mark.asyncio
    async def test_drive_search(self, prefetcher, workspace):
        skills = SkillRegistry(workspace=workspace)

        bundle = await prefetcher.prefetch("find the file named budget", skills)

        assert bundle.labels == ["DRIVE SEARCH RESULTS"]
        workspace.search_files.assert_awaited_once_with("budget")

    @pytest.mark.asyncio
    async def test_web_search_only_without_other_sections(self, prefetcher):
        search = FakeSearch()
        skills = SkillRegistry(search=search)

        bundle = await prefetcher.prefetch("search for rust async runtimes", skills)

        assert bundle.labels == ["WEB SEARCH RESULTS"]
        search.search.assert_awaited_once_with("rust async runtimes")

    @pytest.mark.asyncio
    async def test_web_search_skipped_when_account_data_found(self, prefetcher, workspace):
        search = FakeSearch()
        skills = SkillRegistry(workspace=workspace, search=search)

        bundle = await prefetcher.prefetch("what is in my inbox", skills)

        assert bundle.labels == ["RECENT EMAILS"]
        search.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_ready_workspace_is_skipped(self, prefetcher):
        workspace = FakeWorkspace(ready=False)

        bundle = await prefetcher.prefetch("check my email", SkillRegistry(workspace=workspace))

        assert not bundle
        workspace.get_recent_emails.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_keeps_gathered_sections(self, prefetcher, workspace):
        workspace.get_today_events.side_effect = RuntimeError("calendar down")
        skills = SkillRegistry(workspace=workspace)

        bundle = await prefetcher.prefetch("email and calendar for today, also the drive file budget", skills)

        assert bundle.labels == ["RECENT EMAILS"]
        workspace.search_files.assert_not_called()


# =============================================================================
# Compose Context
# =============================================================================

class TestComposeContext:
    """Tests for concurrent compose-mode enrichment."""

    @pytest.mark.asyncio
    async def test_all_sections_in_fixed_order(self, prefetcher, workspace):
        async def slow_emails(n):
            await asyncio.sleep(0.01)
            return "slow emails"

        workspace.get_recent_emails.side_effect = slow_emails
        skills = SkillRegistry(workspace=workspace)

        bundle = await prefetcher.compose_context("reply to the email about the meeting, attach the file", skills)

        assert bundle.labels == ["RECENT EMAILS (for context)", "TODAY'S CALENDAR", "RECENT DRIVE FILES"]
        workspace.get_recent_emails.assert_awaited_once_with(5)
        workspace.list_recent_files.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, prefetcher, workspace):
        workspace.get_recent_emails.side_effect = RuntimeError("gmail quota")
        skills = SkillRegistry(workspace=workspace)

        bundle = await prefetcher.compose_context("summarize the email thread and the meeting", skills)

        assert bundle.labels == ["TODAY'S CALENDAR"]

    @pytest.mark.asyncio
    async def test_no_workspace(self, prefetcher):
        bundle = await prefetcher.compose_context("summarize the email thread", SkillRegistry())
        assert len(bundle) == 0


# =============================================================================
# Analyze Fetch
# =============================================================================

class TestFetchCategory:
    """Tests for the single-category analyze fetch."""

    @pytest.mark.asyncio
    async def test_email(self, prefetcher, workspace):
        data = await prefetcher.fetch_category(DataCategory.EMAIL, "any mail?", SkillRegistry(workspace=workspace))
        assert data == "From: dana@example.com - Q3 numbers"
        workspace.get_recent_emails.assert_awaited_once_with(10)

    @pytest.mark.asyncio
    async def test_drive_uses_derived_term(self, prefetcher, workspace):
        await prefetcher.fetch_category(DataCategory.DRIVE, "check drive", SkillRegistry(workspace=workspace))
        workspace.search_files.assert_awaited_once_with("recent")

    @pytest.mark.asyncio
    async def test_errors_propagate(self, prefetcher, workspace):
        workspace.get_today_events.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await prefetcher.fetch_category(DataCategory.CALENDAR, "today", SkillRegistry(workspace=workspace))

    def test_not_configured_marker(self):
        assert is_not_configured("") is True
        assert is_not_configured("Google Calendar not configured") is True
        assert is_not_configured("10:00 Standup") is False
