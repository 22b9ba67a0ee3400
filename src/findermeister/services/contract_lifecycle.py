"""Find → proposal → contract → submission → payout lifecycle.

All writes for one step happen in a single commit. Races that a
check-then-act cannot close are closed by the database:

- a second proposal by the same finder hits ``uq_proposal_finder_find``;
- token debits are a conditional UPDATE (``token_balance >= cost``);
- acceptance flips the find ``open → in_progress`` with a conditional UPDATE,
  and ``contracts.find_id`` is unique, so only one proposal per find can win;
- payout flips escrow with a conditional UPDATE, so it cannot run twice.

Notification emails go out after the commit and never undo it.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from findermeister.app.config import get_settings
from findermeister.domain.enums import (
    EscrowStatus,
    FindStatus,
    ProposalStatus,
    SubmissionStatus,
    TransactionType,
    UserRole,
)
from findermeister.domain.models import (
    Contract,
    Find,
    Finder,
    OrderSubmission,
    Proposal,
    Review,
    User,
    utcnow,
)
from findermeister.services.errors import (
    ConflictError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from findermeister.services.escrow_state_machine import EscrowActor, EscrowStateMachine
from findermeister.services.finder_levels import FinderLevelService
from findermeister.services.strike_service import StrikeService
from findermeister.services.token_ledger import TokenLedger

logger = logging.getLogger(__name__)

ALREADY_ACCEPTED = "This request has already been accepted by another finder"
DUPLICATE_PROPOSAL = "You have already submitted a proposal for this request"


class ContractLifecycleService:
    """Drives finds, proposals, contracts, submissions and payouts."""

    def __init__(self, db: AsyncSession, email=None):
        self.db = db
        self.email = email
        self.settings = get_settings()
        self.ledger = TokenLedger(db)
        self.strikes = StrikeService(db)
        self.levels = FinderLevelService(db)
        self.escrow = EscrowStateMachine()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get(self, model, object_id: str, label: str):
        result = await self.db.execute(select(model).where(model.id == object_id))
        obj = result.scalar_one_or_none()
        if obj is None:
            raise NotFoundError(f"{label} not found")
        return obj

    async def get_find(self, find_id: str) -> Find:
        return await self._get(Find, find_id, "Find")

    async def get_contract(self, contract_id: str) -> Contract:
        return await self._get(Contract, contract_id, "Contract")

    async def finder_for_user(self, user: User) -> Finder:
        result = await self.db.execute(select(Finder).where(Finder.user_id == user.id))
        finder = result.scalar_one_or_none()
        if finder is None:
            raise NotFoundError("Finder profile not found")
        return finder

    async def _user(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _finder_user(self, finder_id: str) -> User | None:
        result = await self.db.execute(
            select(User).join(Finder, Finder.user_id == User.id).where(Finder.id == finder_id)
        )
        return result.scalar_one_or_none()

    async def latest_submission(self, contract_id: str) -> OrderSubmission | None:
        result = await self.db.execute(
            select(OrderSubmission)
            .where(OrderSubmission.contract_id == contract_id)
            .order_by(OrderSubmission.submitted_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _is_participant(self, user: User, contract: Contract) -> bool:
        if user.role == UserRole.ADMIN.value or contract.client_id == user.id:
            return True
        if user.role == UserRole.FINDER.value:
            finder = await self.finder_for_user(user)
            return contract.finder_id == finder.id
        return False

    # ------------------------------------------------------------------
    # Finds
    # ------------------------------------------------------------------

    async def create_find(self, client: User, **fields) -> Find:
        summary = await self.strikes.get_user_restrictions(client.id)
        if not summary.can_post:
            raise PermissionDeniedError("Your account is currently restricted from posting requests")
        budget_min, budget_max = fields.get("budget_min"), fields.get("budget_max")
        if budget_min is not None and budget_max is not None and budget_min > budget_max:
            raise ValidationFailedError("budgetMin must not exceed budgetMax")

        find = Find(client_id=client.id, status=FindStatus.OPEN.value, **fields)
        self.db.add(find)
        await self.db.commit()
        await self.db.refresh(find)
        logger.info("Find %s created by client %s", find.id, client.id)
        return find

    async def list_client_finds(self, client: User) -> list[Find]:
        result = await self.db.execute(
            select(Find).where(Find.client_id == client.id).order_by(Find.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_open_finds(self) -> list[Find]:
        result = await self.db.execute(
            select(Find)
            .where(Find.status == FindStatus.OPEN.value)
            .order_by(Find.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all_finds(self) -> list[Find]:
        result = await self.db.execute(select(Find).order_by(Find.created_at.desc()))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def submit_proposal(self, finder_user: User, find_id: str, **fields) -> Proposal:
        find = await self.get_find(find_id)
        finder = await self.finder_for_user(finder_user)

        summary = await self.strikes.get_user_restrictions(finder_user.id)
        if not summary.can_apply:
            raise PermissionDeniedError(
                "Your account is currently restricted from submitting proposals"
            )

        accepted = await self.db.execute(
            select(Proposal.id).where(
                Proposal.find_id == find.id,
                Proposal.status == ProposalStatus.ACCEPTED.value,
            )
        )
        if accepted.first() is not None:
            raise ConflictError(ALREADY_ACCEPTED)

        existing = await self.db.execute(
            select(Proposal.id).where(
                Proposal.find_id == find.id,
                Proposal.finder_id == finder.id,
            )
        )
        if existing.first() is not None:
            raise ConflictError(DUPLICATE_PROPOSAL)

        cost = await self.ledger.get_proposal_token_cost()
        if await self.ledger.get_balance(finder) < cost:
            raise ConflictError("Insufficient findertokens to submit proposal")

        if find.status != FindStatus.OPEN.value:
            raise ConflictError("This request is no longer accepting proposals")

        proposal = Proposal(
            find_id=find.id,
            finder_id=finder.id,
            status=ProposalStatus.PENDING.value,
            **fields,
        )
        find_id, finder_id = find.id, finder.id
        self.db.add(proposal)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            # Only a concurrent insert of the same (finder, find) pair is a duplicate
            raced = await self.db.execute(
                select(Proposal.id).where(
                    Proposal.find_id == find_id,
                    Proposal.finder_id == finder_id,
                )
            )
            if raced.first() is not None:
                raise ConflictError(DUPLICATE_PROPOSAL)
            raise

        if cost > 0:
            try:
                await self.ledger.debit(
                    finder,
                    cost,
                    TransactionType.PROPOSAL,
                    f"Proposal submitted for request: {find.id}",
                    reference=proposal.id,
                )
            except MarketplaceError:
                await self.db.rollback()
                raise

        await self.db.commit()
        await self.db.refresh(proposal)
        logger.info(
            "Proposal %s submitted on find %s by finder %s (cost=%d)",
            proposal.id, find.id, finder.id, cost,
        )

        if self.email is not None:
            client = await self._user(find.client_id)
            if client:
                await self.email.notify_client_new_proposal(
                    client.email,
                    f"{finder_user.first_name} {finder_user.last_name}",
                    find.title,
                    proposal.price,
                )
        return proposal

    async def get_proposal(self, user: User, proposal_id: str) -> Proposal:
        proposal = await self._get(Proposal, proposal_id, "Proposal")
        if user.role == UserRole.ADMIN.value:
            return proposal
        if user.role == UserRole.FINDER.value:
            finder = await self.finder_for_user(user)
            if proposal.finder_id == finder.id:
                return proposal
            raise PermissionDeniedError()
        find = await self.get_find(proposal.find_id)
        if find.client_id != user.id:
            raise PermissionDeniedError()
        return proposal

    async def list_find_proposals(self, user: User, find_id: str) -> list[Proposal]:
        find = await self.get_find(find_id)
        if user.role != UserRole.ADMIN.value and find.client_id != user.id:
            raise PermissionDeniedError()
        result = await self.db.execute(
            select(Proposal).where(Proposal.find_id == find.id).order_by(Proposal.created_at)
        )
        return list(result.scalars().all())

    async def list_client_proposals(self, client: User) -> list[Proposal]:
        result = await self.db.execute(
            select(Proposal)
            .join(Find, Find.id == Proposal.find_id)
            .where(Find.client_id == client.id)
            .order_by(Proposal.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_finder_proposals(self, finder_user: User) -> list[Proposal]:
        finder = await self.finder_for_user(finder_user)
        result = await self.db.execute(
            select(Proposal)
            .where(Proposal.finder_id == finder.id)
            .order_by(Proposal.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all_proposals(self) -> list[Proposal]:
        result = await self.db.execute(select(Proposal).order_by(Proposal.created_at.desc()))
        return list(result.scalars().all())

    async def accept_proposal(self, client: User, proposal_id: str) -> tuple[Proposal, Contract]:
        proposal = await self._get(Proposal, proposal_id, "Proposal")
        find = await self.get_find(proposal.find_id)
        if find.client_id != client.id:
            raise PermissionDeniedError()
        if proposal.status != ProposalStatus.PENDING.value:
            raise ConflictError(f"Proposal is already {proposal.status}")
        if find.status != FindStatus.OPEN.value:
            raise ConflictError(ALREADY_ACCEPTED)

        now = utcnow()
        claimed = await self.db.execute(
            update(Find)
            .where(Find.id == find.id, Find.status == FindStatus.OPEN.value)
            .values(status=FindStatus.IN_PROGRESS.value, updated_at=now)
        )
        if claimed.rowcount == 0:
            await self.db.rollback()
            raise ConflictError(ALREADY_ACCEPTED)

        proposal.status = ProposalStatus.ACCEPTED.value
        contract = Contract(
            find_id=find.id,
            proposal_id=proposal.id,
            client_id=client.id,
            finder_id=proposal.finder_id,
            amount=proposal.price,
            escrow_status=EscrowStatus.HELD.value,
        )
        self.db.add(contract)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(ALREADY_ACCEPTED)

        await self.db.refresh(proposal)
        await self.db.refresh(contract)
        await self.db.refresh(find)
        logger.info(
            "Proposal %s accepted; contract %s created (amount=%s)",
            proposal.id, contract.id, contract.amount,
        )

        if self.email is not None:
            finder_user = await self._finder_user(proposal.finder_id)
            if finder_user:
                await self.email.notify_finder_hired(
                    finder_user.email,
                    f"{client.first_name} {client.last_name}",
                    find.title,
                    contract.amount,
                )
        return proposal, contract

    async def reject_proposal(self, client: User, proposal_id: str) -> Proposal:
        proposal = await self._get(Proposal, proposal_id, "Proposal")
        find = await self.get_find(proposal.find_id)
        if find.client_id != client.id:
            raise PermissionDeniedError()
        if proposal.status != ProposalStatus.PENDING.value:
            raise ConflictError(f"Proposal is already {proposal.status}")
        proposal.status = ProposalStatus.REJECTED.value
        await self.db.commit()
        await self.db.refresh(proposal)
        return proposal

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def list_contracts_for(self, user: User) -> list[Contract]:
        query = select(Contract).order_by(Contract.created_at.desc())
        if user.role == UserRole.CLIENT.value:
            query = query.where(Contract.client_id == user.id)
        elif user.role == UserRole.FINDER.value:
            finder = await self.finder_for_user(user)
            query = query.where(Contract.finder_id == finder.id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_contract_with_submission(
        self, user: User, contract_id: str
    ) -> tuple[Contract, Find, OrderSubmission | None]:
        contract = await self.get_contract(contract_id)
        if not await self._is_participant(user, contract):
            raise PermissionDeniedError()
        find = await self.get_find(contract.find_id)
        return contract, find, await self.latest_submission(contract.id)

    async def complete_contract(self, finder_user: User, contract_id: str) -> Contract:
        contract = await self.get_contract(contract_id)
        finder = await self.finder_for_user(finder_user)
        if contract.finder_id != finder.id:
            raise PermissionDeniedError()
        self.escrow.validate_transition(
            EscrowStatus(contract.escrow_status), EscrowStatus.COMPLETED, EscrowActor.FINDER
        )
        contract.escrow_status = EscrowStatus.COMPLETED.value
        contract.is_completed = True
        contract.completed_at = utcnow()
        await self.db.commit()
        await self.db.refresh(contract)
        logger.info("Contract %s marked complete by finder %s", contract.id, finder.id)
        return contract

    async def submit_work(
        self,
        finder_user: User,
        contract_id: str,
        submission_text: str | None,
        attachment_paths: list[str],
        now: datetime | None = None,
    ) -> OrderSubmission:
        contract = await self.get_contract(contract_id)
        finder = await self.finder_for_user(finder_user)
        if contract.finder_id != finder.id:
            raise PermissionDeniedError()
        if contract.escrow_status == EscrowStatus.RELEASED.value:
            raise ConflictError("Payment for this contract has already been released")

        latest = await self.latest_submission(contract.id)
        if latest is not None and latest.status == SubmissionStatus.SUBMITTED.value:
            raise ConflictError("A submission is already awaiting client review")
        if latest is not None and latest.status == SubmissionStatus.ACCEPTED.value:
            raise ConflictError("Work for this contract has already been accepted")

        now = now or utcnow()
        submission = OrderSubmission(
            contract_id=contract.id,
            finder_id=finder.id,
            submission_text=submission_text,
            attachment_paths=attachment_paths,
            status=SubmissionStatus.SUBMITTED.value,
            auto_release_date=now + timedelta(days=self.settings.submission_auto_release_days),
            submitted_at=now,
        )
        self.db.add(submission)
        contract.has_submission = True
        await self.db.commit()
        await self.db.refresh(submission)
        logger.info("Submission %s created for contract %s", submission.id, contract.id)

        if self.email is not None:
            client = await self._user(contract.client_id)
            find = await self.get_find(contract.find_id)
            if client:
                await self.email.notify_client_order_submission(
                    client.email,
                    f"{finder_user.first_name} {finder_user.last_name}",
                    find.title,
                )
        return submission

    async def review_submission(
        self,
        client: User,
        submission_id: str,
        status: SubmissionStatus,
        client_feedback: str | None = None,
        now: datetime | None = None,
    ) -> OrderSubmission:
        submission = await self._get(OrderSubmission, submission_id, "Submission")
        contract = await self.get_contract(submission.contract_id)
        if contract.client_id != client.id:
            raise PermissionDeniedError()
        if submission.status != SubmissionStatus.SUBMITTED.value:
            raise ConflictError("Submission has already been reviewed")

        now = now or utcnow()
        if status == SubmissionStatus.ACCEPTED:
            await self._accept_submission(contract, submission, EscrowActor.CLIENT, now)
        elif status == SubmissionStatus.REJECTED:
            # has_submission stays set; the finder resubmits against the same contract
            submission.status = SubmissionStatus.REJECTED.value
            submission.client_feedback = client_feedback
            submission.reviewed_at = now
        else:
            raise ValidationFailedError("Status must be 'accepted' or 'rejected'")
        if client_feedback and status == SubmissionStatus.ACCEPTED:
            submission.client_feedback = client_feedback

        await self.db.commit()
        await self.db.refresh(submission)
        logger.info("Submission %s %s by client %s", submission.id, submission.status, client.id)

        if self.email is not None:
            finder_user = await self._finder_user(contract.finder_id)
            find = await self.get_find(contract.find_id)
            client_name = f"{client.first_name} {client.last_name}"
            if finder_user and status == SubmissionStatus.ACCEPTED:
                await self.email.notify_finder_submission_approved(
                    finder_user.email, client_name, find.title, contract.amount
                )
            elif finder_user:
                await self.email.notify_finder_submission_rejected(
                    finder_user.email, client_name, find.title, client_feedback
                )
        return submission

    async def _accept_submission(
        self,
        contract: Contract,
        submission: OrderSubmission,
        actor: EscrowActor,
        now: datetime,
    ) -> None:
        submission.status = SubmissionStatus.ACCEPTED.value
        submission.reviewed_at = now
        submission.auto_release_date = now + timedelta(days=self.settings.accepted_auto_release_days)

        find = await self.get_find(contract.find_id)
        find.status = FindStatus.COMPLETED.value

        contract.is_completed = True
        contract.completed_at = contract.completed_at or now
        if contract.escrow_status not in (EscrowStatus.COMPLETED.value, EscrowStatus.RELEASED.value):
            self.escrow.validate_transition(
                EscrowStatus(contract.escrow_status), EscrowStatus.COMPLETED, actor
            )
            contract.escrow_status = EscrowStatus.COMPLETED.value

    async def release_payment(
        self, client: User, contract_id: str, now: datetime | None = None
    ) -> Contract:
        contract = await self.get_contract(contract_id)
        if contract.client_id != client.id:
            raise PermissionDeniedError()
        await self._release(contract, EscrowActor.CLIENT, now or utcnow())
        await self.db.commit()
        await self.db.refresh(contract)
        await self._notify_released(contract)
        return contract

    async def _release(self, contract: Contract, actor: EscrowActor, now: datetime) -> None:
        current = EscrowStatus(contract.escrow_status)
        self.escrow.validate_transition(current, EscrowStatus.RELEASED, actor)

        flipped = await self.db.execute(
            update(Contract)
            .where(Contract.id == contract.id, Contract.escrow_status == current.value)
            .values(
                escrow_status=EscrowStatus.RELEASED.value,
                released_at=now,
                is_completed=True,
                completed_at=func.coalesce(Contract.completed_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            await self.db.rollback()
            raise ConflictError("Payment has already been released")

        await self.db.execute(
            update(Finder)
            .where(Finder.id == contract.finder_id)
            .values(
                total_earned=Finder.total_earned + contract.amount,
                available_balance=Finder.available_balance + contract.amount,
                jobs_completed=Finder.jobs_completed + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Find)
            .where(Find.id == contract.find_id, Find.status == FindStatus.IN_PROGRESS.value)
            .values(status=FindStatus.COMPLETED.value, updated_at=now)
        )
        await self.db.refresh(contract)

        finder = await self._get(Finder, contract.finder_id, "Finder")
        await self.db.refresh(finder)
        await self.levels.refresh_finder_level(finder)
        logger.info(
            "Payment released: contract=%s finder=%s amount=%s actor=%s",
            contract.id, finder.id, contract.amount, actor.value,
        )

    async def _notify_released(self, contract: Contract) -> None:
        if self.email is None:
            return
        finder_user = await self._finder_user(contract.finder_id)
        find = await self.get_find(contract.find_id)
        if finder_user:
            await self.email.notify_finder_payment_released(
                finder_user.email, find.title, contract.amount
            )

    async def auto_release_due(self, now: datetime | None = None) -> int:
        """Release escrow for contracts whose latest submission is past its auto-release date.

        A submission the client never answered is accepted on their behalf
        first. Each contract commits on its own; one failure does not stop
        the rest.
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Contract.id).where(
                Contract.has_submission.is_(True),
                Contract.escrow_status != EscrowStatus.RELEASED.value,
            )
        )
        released = 0
        # Ids rather than rows: a rollback below expires every loaded instance
        for contract_id in result.scalars().all():
            contract = await self.get_contract(contract_id)
            submission = await self.latest_submission(contract_id)
            if submission is None or submission.auto_release_date is None:
                continue
            if submission.status == SubmissionStatus.REJECTED.value:
                continue
            if submission.auto_release_date > now:
                continue
            try:
                if submission.status == SubmissionStatus.SUBMITTED.value:
                    await self._accept_submission(contract, submission, EscrowActor.SYSTEM, now)
                await self._release(contract, EscrowActor.SYSTEM, now)
                await self.db.commit()
            except MarketplaceError as e:
                await self.db.rollback()
                logger.warning("Auto-release skipped for contract %s: %s", contract_id, e)
                continue
            released += 1
            await self._notify_released(contract)

        if released:
            logger.info("Auto-released %d contracts", released)
        return released

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    async def create_review(
        self, client: User, contract_id: str, rating: int, comment: str | None = None
    ) -> Review:
        if not 1 <= rating <= 5:
            raise ValidationFailedError("Rating must be between 1 and 5")
        contract = await self.get_contract(contract_id)
        if contract.client_id != client.id:
            raise PermissionDeniedError()

        review = Review(
            contract_id=contract.id,
            client_id=client.id,
            finder_id=contract.finder_id,
            rating=rating,
            comment=comment,
        )
        self.db.add(review)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("A review has already been submitted for this contract")

        average = await self.db.execute(
            select(func.avg(Review.rating)).where(Review.finder_id == contract.finder_id)
        )
        finder = await self._get(Finder, contract.finder_id, "Finder")
        finder.average_rating = round(float(average.scalar_one() or 0), 2)
        await self.levels.refresh_finder_level(finder)

        await self.db.commit()
        await self.db.refresh(review)
        logger.info("Review %s (%d stars) for finder %s", review.id, rating, finder.id)
        return review

    async def list_finder_reviews(self, finder_id: str) -> list[Review]:
        await self._get(Finder, finder_id, "Finder")
        result = await self.db.execute(
            select(Review).where(Review.finder_id == finder_id).order_by(Review.created_at.desc())
        )
        return list(result.scalars().all())
