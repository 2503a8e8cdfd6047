"""
SplitRuleService -- split rule storage, lookup and recipient resolution.

Responsibility:
    Creates and deactivates split rules, finds the rule that applies to a
    purchase, and maps each share's role to a concrete ledger account.

Architecture position:
    Kernel > Services.  Called by SplitApplier; admin tooling calls the
    create/deactivate operations directly.

Invariants enforced:
    - Rules sum to exactly 100 percent at creation (SplitPercentageError).
    - Lookup order, first match wins:
        1. active rule for the exact (entity_type, entity_id)
        2. active ``is_default`` rule for the entity type
        3. the platform default table from TreasuryPolicy
    - Platform shares always resolve to the configured reserve account.

Failure modes:
    - Roles the RoleResolver cannot fill, or fails to look up, are dropped
      from the resolution with a WARNING and returned with their
      RecipientResolutionError.  Their share ends up in the platform residue.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.domain.dtos import SplitRuleRecord
from treasury_kernel.domain.policies import SplitShare, TreasuryPolicy
from treasury_kernel.domain.ports import RoleResolver
from treasury_kernel.domain.splits import ResolvedRecipient, validate_split_shares
from treasury_kernel.domain.values import EntityType, RecipientRole
from treasury_kernel.exceptions import (
    RecipientResolutionError,
    SplitRuleNotFoundError,
    ValidationError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditEventType
from treasury_kernel.models.split_rule import SplitRule
from treasury_kernel.services.audit_log import AuditLog
from treasury_kernel.services.base import BaseService

logger = get_logger("services.split_rules")


class RuleSource:
    ENTITY = "entity"
    TYPE_DEFAULT = "type_default"
    PLATFORM_DEFAULT = "platform_default"


@dataclass(frozen=True)
class SplitRuleMatch:
    """The shares that apply to a purchase and where they came from."""

    shares: tuple[SplitShare, ...]
    source: str
    rule_id: UUID | None = None


@dataclass(frozen=True)
class UnresolvedShare:
    share: SplitShare
    error: RecipientResolutionError


@dataclass(frozen=True)
class RecipientResolution:
    recipients: tuple[ResolvedRecipient, ...]
    unresolved: tuple[UnresolvedShare, ...] = ()


def _coerce_share(share: SplitShare | Mapping[str, Any]) -> SplitShare:
    if isinstance(share, SplitShare):
        return share
    return SplitShare.from_dict(share)


class SplitRuleService(BaseService[SplitRule]):
    def __init__(
        self,
        session: Session,
        policy: TreasuryPolicy,
        role_resolver: RoleResolver,
        clock: Clock | None = None,
        audit_log: AuditLog | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._resolver = role_resolver
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLog(session, self._clock)

    # =========================================================================
    # Rule management
    # =========================================================================

    def create_split_rule(
        self,
        owner_id: str,
        name: str,
        entity_type: EntityType,
        recipients: Sequence[SplitShare | Mapping[str, Any]],
        entity_id: str | None = None,
        is_default: bool = False,
    ) -> SplitRuleRecord:
        """
        Create a split rule.

        Raises:
            SplitPercentageError: Percentages do not sum to 100 or a percent
                is out of range.
            ValidationError: Missing name or owner.
        """
        if not owner_id:
            raise ValidationError("Split rule owner is required", field="owner_id")
        if not name:
            raise ValidationError("Split rule name is required", field="name")

        shares = tuple(_coerce_share(r) for r in recipients)
        validate_split_shares(shares)

        rule = SplitRule(
            id=uuid4(),
            owner_id=owner_id,
            name=name,
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            recipients=[s.to_dict() for s in shares],
            is_default=is_default,
            is_active=True,
            created_at=self._clock.now(),
        )
        self.session.add(rule)
        self.session.flush()

        logger.info(
            "split_rule_created",
            extra={
                "rule_id": str(rule.id),
                "owner_id": owner_id,
                "entity_type": rule.entity_type.value,
                "entity_id": entity_id,
                "is_default": is_default,
            },
        )
        self._audit.log_event(
            AuditEventType.SPLIT_RULE_CREATED,
            {"rule_id": str(rule.id), "owner_id": owner_id, "recipients": rule.recipients},
            actor_id=owner_id,
        )
        return rule.to_dto()

    def get_owner_split_rules(self, owner_id: str) -> list[SplitRuleRecord]:
        """Active rules owned by ``owner_id``, newest first."""
        rules = self.session.scalars(
            select(SplitRule)
            .where(SplitRule.owner_id == owner_id, SplitRule.is_active.is_(True))
            .order_by(SplitRule.created_at.desc())
        ).all()
        return [r.to_dto() for r in rules]

    def deactivate_split_rule(self, rule_id: UUID | str, owner_id: str) -> SplitRuleRecord:
        """
        Deactivate a rule owned by ``owner_id``.

        Raises:
            SplitRuleNotFoundError: Unknown id or owned by someone else.
        """
        if isinstance(rule_id, str):
            rule_id = UUID(rule_id)
        rule = self.session.get(SplitRule, rule_id)
        if rule is None or rule.owner_id != owner_id:
            raise SplitRuleNotFoundError(str(rule_id))
        if rule.is_active:
            rule.is_active = False
            rule.deactivated_at = self._clock.now()
            self.session.flush()
            logger.info(
                "split_rule_deactivated",
                extra={"rule_id": str(rule_id), "owner_id": owner_id},
            )
            self._audit.log_event(
                AuditEventType.SPLIT_RULE_DEACTIVATED,
                {"rule_id": str(rule_id)},
                actor_id=owner_id,
            )
        return rule.to_dto()

    # =========================================================================
    # Lookup and resolution
    # =========================================================================

    def get_split_rules(
        self,
        entity_type: EntityType,
        entity_id: str | None = None,
    ) -> SplitRuleMatch:
        """Shares for a purchase of ``entity_type``/``entity_id``."""
        entity_type = EntityType(entity_type)

        if entity_id is not None:
            rule = self.session.scalars(
                select(SplitRule)
                .where(
                    SplitRule.entity_type == entity_type,
                    SplitRule.entity_id == entity_id,
                    SplitRule.is_active.is_(True),
                )
                .order_by(SplitRule.created_at.desc())
                .limit(1)
            ).first()
            if rule is not None:
                return SplitRuleMatch(rule.shares, RuleSource.ENTITY, rule.id)

        rule = self.session.scalars(
            select(SplitRule)
            .where(
                SplitRule.entity_type == entity_type,
                SplitRule.is_default.is_(True),
                SplitRule.is_active.is_(True),
            )
            .order_by(SplitRule.created_at.desc())
            .limit(1)
        ).first()
        if rule is not None:
            return SplitRuleMatch(rule.shares, RuleSource.TYPE_DEFAULT, rule.id)

        return SplitRuleMatch(
            self._policy.default_split_for(entity_type),
            RuleSource.PLATFORM_DEFAULT,
        )

    def resolve_recipients(
        self,
        shares: Sequence[SplitShare],
        entity_type: EntityType,
        entity_id: str | None,
    ) -> RecipientResolution:
        """Map every share to a ledger account, dropping unresolvable roles."""
        resolved: list[ResolvedRecipient] = []
        unresolved: list[UnresolvedShare] = []

        for share in shares:
            reason = None
            if share.recipient_id:
                account_id = share.recipient_id
            elif share.role == RecipientRole.PLATFORM:
                account_id = self._policy.platform_reserve_account
            else:
                try:
                    account_id = self._resolver.resolve_role(entity_type, entity_id, share.role)
                except Exception as exc:
                    # Resolver is an outside lookup; its failure only loses this share.
                    account_id = None
                    reason = str(exc) or type(exc).__name__
                    logger.warning(
                        "split_recipient_resolver_error",
                        extra={"role": share.role.value, "entity_id": entity_id},
                        exc_info=True,
                    )

            if not account_id:
                error = RecipientResolutionError(
                    share.role.value, EntityType(entity_type).value, entity_id, reason
                )
                logger.warning(
                    "split_recipient_unresolved",
                    extra={
                        "role": share.role.value,
                        "entity_type": EntityType(entity_type).value,
                        "entity_id": entity_id,
                        "reason": reason,
                    },
                )
                unresolved.append(UnresolvedShare(share, error))
                continue

            resolved.append(
                ResolvedRecipient(account_id=account_id, role=share.role, percent=share.percent)
            )

        return RecipientResolution(tuple(resolved), tuple(unresolved))
