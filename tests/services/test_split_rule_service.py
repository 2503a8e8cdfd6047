"""
Tests for SplitRuleService -- rule storage, three-tier lookup and recipient
resolution.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from treasury_kernel.domain.policies import SplitShare
from treasury_kernel.domain.values import EntityType, RecipientRole
from treasury_kernel.exceptions import (
    SplitPercentageError,
    SplitRuleNotFoundError,
    ValidationError,
)
from treasury_kernel.models.audit_event import AuditEvent, AuditEventType
from treasury_kernel.services.split_rule_service import RuleSource

SIXTY_FORTY = [
    {"role": "artist", "percent": "60"},
    {"role": "platform", "percent": "40"},
]


class TestCreateSplitRule:
    def test_creates_active_rule(self, split_rule_service, clock):
        rule = split_rule_service.create_split_rule(
            "owner_1", "Headline show", EntityType.EVENT, SIXTY_FORTY, entity_id="evt_1"
        )
        assert rule.is_active
        assert not rule.is_default
        assert rule.entity_id == "evt_1"
        assert rule.created_at == clock.now()
        assert [r["percent"] for r in rule.recipients] == ["60", "40"]

    def test_accepts_split_share_objects(self, split_rule_service):
        rule = split_rule_service.create_split_rule(
            "owner_1",
            "Tips",
            EntityType.TIP,
            [SplitShare(RecipientRole.ARTIST, Decimal("99.5")), SplitShare(RecipientRole.PLATFORM, Decimal("0.5"))],
        )
        assert rule.recipients[0] == {"role": "artist", "percent": "99.5", "recipient_id": None}

    @pytest.mark.parametrize(
        "recipients",
        [
            [{"role": "artist", "percent": 70}, {"role": "platform", "percent": 20}],
            [{"role": "artist", "percent": 80}, {"role": "platform", "percent": 30}],
            [{"role": "artist", "percent": 0}, {"role": "platform", "percent": 100}],
            [],
        ],
    )
    def test_rejects_tables_not_summing_to_100(self, split_rule_service, session, recipients):
        with pytest.raises(SplitPercentageError):
            split_rule_service.create_split_rule("owner_1", "bad", EntityType.EVENT, recipients)
        assert split_rule_service.get_owner_split_rules("owner_1") == []

    def test_requires_owner_and_name(self, split_rule_service):
        with pytest.raises(ValidationError):
            split_rule_service.create_split_rule("", "name", EntityType.EVENT, SIXTY_FORTY)
        with pytest.raises(ValidationError):
            split_rule_service.create_split_rule("owner_1", "", EntityType.EVENT, SIXTY_FORTY)

    def test_audited(self, split_rule_service, session):
        rule = split_rule_service.create_split_rule("owner_1", "r", EntityType.EVENT, SIXTY_FORTY)
        event = session.scalars(
            select(AuditEvent).where(AuditEvent.event_type == AuditEventType.SPLIT_RULE_CREATED)
        ).one()
        assert event.payload["rule_id"] == str(rule.id)
        assert event.actor_id == "owner_1"


class TestOwnerRules:
    def test_active_rules_newest_first(self, split_rule_service, clock):
        first = split_rule_service.create_split_rule("owner_1", "first", EntityType.EVENT, SIXTY_FORTY)
        clock.advance(60)
        second = split_rule_service.create_split_rule("owner_1", "second", EntityType.EVENT, SIXTY_FORTY)
        split_rule_service.create_split_rule("owner_2", "other", EntityType.EVENT, SIXTY_FORTY)

        rules = split_rule_service.get_owner_split_rules("owner_1")
        assert [r.id for r in rules] == [second.id, first.id]

    def test_deactivate(self, split_rule_service, clock):
        rule = split_rule_service.create_split_rule("owner_1", "r", EntityType.EVENT, SIXTY_FORTY)
        result = split_rule_service.deactivate_split_rule(str(rule.id), "owner_1")
        assert not result.is_active
        assert split_rule_service.get_owner_split_rules("owner_1") == []

    def test_deactivate_requires_owner(self, split_rule_service):
        rule = split_rule_service.create_split_rule("owner_1", "r", EntityType.EVENT, SIXTY_FORTY)
        with pytest.raises(SplitRuleNotFoundError):
            split_rule_service.deactivate_split_rule(rule.id, "owner_2")

    def test_deactivate_unknown_rule(self, split_rule_service):
        with pytest.raises(SplitRuleNotFoundError):
            split_rule_service.deactivate_split_rule(uuid4(), "owner_1")


class TestLookup:
    def test_platform_default_when_no_rules(self, split_rule_service, policy):
        match = split_rule_service.get_split_rules(EntityType.EVENT, "evt_1")
        assert match.source == RuleSource.PLATFORM_DEFAULT
        assert match.rule_id is None
        assert match.shares == policy.default_split_for(EntityType.EVENT)

    def test_type_default_beats_platform_default(self, split_rule_service):
        rule = split_rule_service.create_split_rule(
            "admin", "event default", EntityType.EVENT, SIXTY_FORTY, is_default=True
        )
        match = split_rule_service.get_split_rules(EntityType.EVENT, "evt_1")
        assert match.source == RuleSource.TYPE_DEFAULT
        assert match.rule_id == rule.id

    def test_entity_rule_beats_type_default(self, split_rule_service, clock):
        split_rule_service.create_split_rule(
            "admin", "event default", EntityType.EVENT, SIXTY_FORTY, is_default=True
        )
        entity_rule = split_rule_service.create_split_rule(
            "owner_1",
            "evt_1 rule",
            EntityType.EVENT,
            [{"role": "artist", "percent": 90}, {"role": "platform", "percent": 10}],
            entity_id="evt_1",
        )
        match = split_rule_service.get_split_rules(EntityType.EVENT, "evt_1")
        assert match.source == RuleSource.ENTITY
        assert match.rule_id == entity_rule.id
        assert [s.percent for s in match.shares] == [Decimal(90), Decimal(10)]

    def test_entity_rule_does_not_leak_to_other_entities(self, split_rule_service):
        split_rule_service.create_split_rule(
            "owner_1", "evt_1 rule", EntityType.EVENT, SIXTY_FORTY, entity_id="evt_1"
        )
        match = split_rule_service.get_split_rules(EntityType.EVENT, "evt_2")
        assert match.source == RuleSource.PLATFORM_DEFAULT

    def test_inactive_rules_ignored(self, split_rule_service):
        rule = split_rule_service.create_split_rule(
            "owner_1", "evt_1 rule", EntityType.EVENT, SIXTY_FORTY, entity_id="evt_1"
        )
        split_rule_service.deactivate_split_rule(rule.id, "owner_1")
        match = split_rule_service.get_split_rules(EntityType.EVENT, "evt_1")
        assert match.source == RuleSource.PLATFORM_DEFAULT

    def test_newest_entity_rule_wins(self, split_rule_service, clock):
        split_rule_service.create_split_rule(
            "owner_1", "old", EntityType.EVENT, SIXTY_FORTY, entity_id="evt_1"
        )
        clock.advance(60)
        newer = split_rule_service.create_split_rule(
            "owner_1",
            "new",
            EntityType.EVENT,
            [{"role": "artist", "percent": 50}, {"role": "platform", "percent": 50}],
            entity_id="evt_1",
        )
        assert split_rule_service.get_split_rules(EntityType.EVENT, "evt_1").rule_id == newer.id


class TestResolveRecipients:
    def test_roles_resolved_and_platform_maps_to_reserve(self, split_rule_service, policy):
        shares = policy.default_split_for(EntityType.EVENT)
        resolution = split_rule_service.resolve_recipients(shares, EntityType.EVENT, "evt_1")
        assert [(r.role, r.account_id) for r in resolution.recipients] == [
            (RecipientRole.ARTIST, "acct_artist"),
            (RecipientRole.PLATFORM, policy.platform_reserve_account),
            (RecipientRole.HOST, "acct_host"),
        ]
        assert resolution.unresolved == ()

    def test_explicit_recipient_id_wins(self, split_rule_service):
        shares = [
            SplitShare(RecipientRole.PROMOTER, Decimal(10), recipient_id="acct_promoter"),
            SplitShare(RecipientRole.PLATFORM, Decimal(90)),
        ]
        resolution = split_rule_service.resolve_recipients(shares, EntityType.EVENT, "evt_1")
        assert resolution.recipients[0].account_id == "acct_promoter"

    def test_unresolvable_role_is_reported(self, split_rule_service, policy, captured_logs):
        shares = policy.default_split_for(EntityType.EVENT)
        resolution = split_rule_service.resolve_recipients(shares, EntityType.EVENT, "evt_unknown")

        assert [r.role for r in resolution.recipients] == [RecipientRole.PLATFORM]
        assert [u.share.role for u in resolution.unresolved] == [
            RecipientRole.ARTIST,
            RecipientRole.HOST,
        ]
        assert resolution.unresolved[0].error.code == "RECIPIENT_RESOLUTION_FAILED"
        warnings = [r for r in captured_logs() if r["message"] == "split_recipient_unresolved"]
        assert len(warnings) == 2
        assert warnings[0]["level"] == "WARNING"

    def test_resolver_error_is_reported_as_unresolved(
        self, split_rule_service, role_resolver, policy, monkeypatch, captured_logs
    ):
        real_resolve = role_resolver.resolve_role

        def flaky_resolve(entity_type, entity_id, role):
            if role == RecipientRole.HOST:
                raise ConnectionError("directory unavailable")
            return real_resolve(entity_type, entity_id, role)

        monkeypatch.setattr(role_resolver, "resolve_role", flaky_resolve)
        shares = policy.default_split_for(EntityType.EVENT)

        resolution = split_rule_service.resolve_recipients(shares, EntityType.EVENT, "evt_1")

        assert [r.role for r in resolution.recipients] == [RecipientRole.ARTIST, RecipientRole.PLATFORM]
        assert [u.share.role for u in resolution.unresolved] == [RecipientRole.HOST]
        assert resolution.unresolved[0].error.reason == "directory unavailable"
        record = next(r for r in captured_logs() if r["message"] == "split_recipient_resolver_error")
        assert record["exc_type"] == "ConnectionError"
