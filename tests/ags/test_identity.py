"""Tests for identity claim extraction and the account-id identity cache."""

from __future__ import annotations

from typing import Any

import pytest

from ags.identity import Identity, backfill_identity, identity_from_claims, normalize_plan, reconcile_identity
from ags.schemas import AuthInsight, IdentityRecord
from tests.ags.helpers import NOW, OPENAI_AUTH, OPENAI_PROFILE


class TestClaims:
    @pytest.mark.parametrize(
        'claims, expected',
        [
            ({'email': 'a@example.com'}, 'a@example.com'),
            ({OPENAI_PROFILE: {'email': 'b@example.com'}}, 'b@example.com'),
            ({'profile': {'email': 'c@example.com'}}, 'c@example.com'),
            ({'email': '  ', 'profile': {'email': 'd@example.com'}}, 'd@example.com'),
            ({'email': 42}, None),
            ({}, None),
        ],
    )
    def test_email_paths(self, claims: dict[str, Any], expected: str | None) -> None:
        assert identity_from_claims(claims).email == expected

    @pytest.mark.parametrize(
        'claims, expected',
        [
            ({'chatgpt_plan_type': 'pro'}, 'Pro'),
            ({OPENAI_AUTH: {'chatgpt_plan_type': 'team'}}, 'Team'),
            ({'auth': {'chatgpt_plan_type': 'ENTERPRISE'}}, 'Enterprise'),
            ({}, None),
        ],
    )
    def test_plan_paths(self, claims: dict[str, Any], expected: str | None) -> None:
        assert identity_from_claims(claims).plan == expected

    @pytest.mark.parametrize(
        'claims, expected',
        [
            ({'chatgpt_account_id': 'a1'}, 'a1'),
            ({'account_id': 'a2'}, 'a2'),
            ({'accountId': 'a3'}, 'a3'),
            ({OPENAI_AUTH: {'chatgpt_account_id': 'a4'}}, 'a4'),
            ({'auth': {'accountId': 'a5'}}, 'a5'),
            ({'auth': 'not-an-object'}, None),
        ],
    )
    def test_account_id_paths(self, claims: dict[str, Any], expected: str | None) -> None:
        assert identity_from_claims(claims).account_id == expected

    @pytest.mark.parametrize(
        'raw, expected',
        [
            ('free', 'Free'),
            ('plus', 'Plus'),
            (' Pro ', 'Pro'),
            ('team', 'Team'),
            ('enterprise', 'Enterprise'),
            ('max', 'Max'),
            ('business plan', 'Business Plan'),
        ],
    )
    def test_normalize_plan(self, raw: str, expected: str) -> None:
        assert normalize_plan(raw) == expected

    def test_merged_keeps_own_fields(self) -> None:
        own = Identity(email='own@example.com')
        merged = own.merged(Identity(email='other@example.com', plan='Plus', account_id='acct'))
        assert merged == Identity(email='own@example.com', plan='Plus', account_id='acct')

    def test_truthiness(self) -> None:
        assert not Identity(plan='Plus')
        assert Identity(account_id='acct')


class TestIdentityCache:
    CACHE = {'acct-1': IdentityRecord(email='cached@example.com', plan='Plus', updated_at=NOW)}

    def test_backfill_fills_missing_fields(self) -> None:
        insight = AuthInsight(account_id='acct-1')
        filled = backfill_identity(insight, self.CACHE)
        assert filled.identity == 'cached@example.com (Plus)'

    def test_backfill_keeps_known_fields(self) -> None:
        insight = AuthInsight(account_id='acct-1', account_email='live@example.com', account_plan='Pro')
        assert backfill_identity(insight, self.CACHE) is insight

    @pytest.mark.parametrize('account_id', [None, 'acct-unknown'])
    def test_backfill_without_cache_entry(self, account_id: str | None) -> None:
        insight = AuthInsight(account_id=account_id)
        assert backfill_identity(insight, self.CACHE) is insight

    def test_reconcile_records_identity(self) -> None:
        insight = AuthInsight(account_id='acct-2', account_email='new@example.com')

        result, identities = reconcile_identity(insight, self.CACHE, NOW)

        assert result is insight
        assert identities['acct-2'] == IdentityRecord(email='new@example.com', plan=None, updated_at=NOW)
        assert identities['acct-1'] == self.CACHE['acct-1']
        assert 'acct-2' not in self.CACHE

    def test_reconcile_keeps_cached_plan(self) -> None:
        insight = AuthInsight(account_id='acct-1', account_email='cached@example.com')
        result, identities = reconcile_identity(insight, self.CACHE, NOW)
        assert result.account_plan == 'Plus'
        assert identities['acct-1'].plan == 'Plus'

    def test_reconcile_without_email_leaves_cache(self) -> None:
        insight = AuthInsight(account_id='acct-3')
        _, identities = reconcile_identity(insight, self.CACHE, NOW)
        assert identities is self.CACHE
