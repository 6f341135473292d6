"""Consult request lifecycle service.

Every command loads the request fresh, checks the transition guard, applies
the change to a copy and commits it with the etag of the loaded snapshot. A
concurrent writer that committed first makes the commit fail with
:class:`ConflictError`, leaving the winner's state intact. Notifications are
sent after the commit and never undo it.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterable, Sequence

from ..bookings import BookingsClient
from ..core.identity import ActorIdentity
from ..notifications import (
    MessageHandle,
    NotificationError,
    NotificationEvent,
    NotificationOperation,
    Notifier,
)
from ..storage import ConflictError as StoreConflictError
from . import lifecycle
from .assignment import NOT_ASSIGNABLE_CATEGORY, AssignmentReconciler
from .errors import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    Attachment,
    Channel,
    ChannelMapping,
    IdName,
    Note,
    Request,
    RequestStatus,
    TimeBlock,
)
from .repositories import (
    AgentRepository,
    ChannelMappingRepository,
    ChannelRepository,
    RequestRepository,
)
from .schemas import CreateConsultRequest

logger = logging.getLogger(__name__)

REQUEST_NOT_FOUND = "Consult request not found"
INVALID_CATEGORY = "Consult category is not valid"
CATEGORY_CLOSED = "New consult requests cannot be made for this category"
MISSING_ACTOR = "Unable to identify the calling agent"
NOT_A_SUPERVISOR = "Only supervisors can assign consults to other agents"
AGENT_NOT_REGISTERED = "The selected agent is not registered"
CALLER_NOT_REGISTERED = "The calling agent is not registered"
CONCURRENT_UPDATE = "The consult was changed by someone else. Refresh and try again."
EMPTY_NOTE = "Note text cannot be empty"

STAFF_ID_WRITE_ATTEMPTS = 3


def _friendly_id() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _require_actor(actor: ActorIdentity | None) -> ActorIdentity:
    if actor is None or not actor.object_id:
        raise UnauthorizedError(MISSING_ACTOR)
    return actor


class ConsultService:
    """Entry point for every consult request command and query."""

    def __init__(
        self,
        *,
        requests: RequestRepository,
        agents: AgentRepository,
        channels: ChannelRepository,
        mappings: ChannelMappingRepository,
        bookings: BookingsClient,
        notifier: Notifier,
        reconciler: AssignmentReconciler | None = None,
    ) -> None:
        self.requests = requests
        self.agents = agents
        self.channels = channels
        self.mappings = mappings
        self.notifier = notifier
        self.reconciler = reconciler or AssignmentReconciler(bookings)

    # ------------------------------------------------------------------
    # Helpers

    async def _load(self, request_id: str) -> Request:
        request = await self.requests.get_by_id(request_id)
        if request is None:
            logger.error("consult %s: not found", request_id)
            raise NotFoundError(REQUEST_NOT_FOUND)
        return request

    def _guard(self, request: Request, check: Callable[[Request], None]) -> None:
        try:
            check(request)
        except InvalidStateError as exc:
            logger.warning(
                "consult %s: rejected in %s: %s", request.id, request.status.value, exc.reason
            )
            raise

    async def _commit(self, updated: Request, etag: str | None) -> Request:
        try:
            return await self.requests.upsert(updated, if_match=etag)
        except StoreConflictError as exc:
            logger.warning("consult %s: concurrent update lost: %s", updated.id, exc)
            raise ConflictError(CONCURRENT_UPDATE) from exc

    async def _channel_for(self, request: Request) -> Channel | None:
        mapping = await self.mappings.get_by_category(request.category)
        if mapping is None:
            return None
        return await self.channels.get_by_channel_id(mapping.channel_id)

    async def _notify(
        self,
        operation: NotificationOperation,
        request: Request,
        *,
        channel: Channel | None = None,
        actor: ActorIdentity | None = None,
        assignee: IdName | None = None,
        comment: str | None = None,
        mentions: Sequence[IdName] = (),
        locale: str | None = None,
    ) -> Request:
        if channel is None:
            channel = await self._channel_for(request)
        if channel is None:
            logger.warning(
                "consult %s: no channel for category %s, %s notification skipped",
                request.id,
                request.category,
                operation.value,
            )
            return request
        event = NotificationEvent(
            operation=operation,
            request=request,
            channel=channel,
            actor=actor.as_id_name() if actor else None,
            assignee=assignee,
            comment=comment,
            mentions=list(mentions),
            locale=locale,
        )
        try:
            handle = await self.notifier.notify(event)
        except NotificationError:
            logger.exception("consult %s: %s notification failed", request.id, operation.value)
            return request
        if handle is not None and not request.conversation_id:
            return await self._remember_handle(request, handle)
        return request

    async def _remember_handle(self, request: Request, handle: MessageHandle) -> Request:
        updated = request.model_copy(deep=True)
        updated.conversation_id = handle.conversation_id
        updated.activity_id = handle.activity_id
        try:
            return await self.requests.upsert(updated, if_match=request.etag)
        except StoreConflictError:
            logger.warning("consult %s: message handle not stored, request changed", request.id)
            return request

    async def _locale_of(self, object_id: str) -> str | None:
        agent = await self.agents.get_by_object_id(object_id)
        return agent.locale if agent else None

    # ------------------------------------------------------------------
    # Queries

    async def get_request(self, request_id: str) -> Request:
        return await self._load(request_id)

    async def list_assigned_to(self, actor: ActorIdentity | None) -> list[Request]:
        actor = _require_actor(actor)
        return await self.requests.get_by_assigned_to_id(actor.object_id)

    async def get_by_conversation(self, conversation_id: str) -> Request:
        request = await self.requests.get_by_conversation_id(conversation_id)
        if request is None:
            raise NotFoundError(REQUEST_NOT_FOUND)
        return request

    async def list_filtered(
        self,
        categories: Iterable[str] = (),
        statuses: Iterable[RequestStatus] = (),
    ) -> list[Request]:
        return await self.requests.get_filtered(categories, statuses)

    async def is_supervisor(self, request_id: str, actor: ActorIdentity | None) -> bool:
        """Whether ``actor`` may assign ``request_id`` to other agents."""

        actor = _require_actor(actor)
        request = await self._load(request_id)
        mapping = await self.mappings.get_by_category(request.category)
        if mapping is None:
            return False
        return _may_assign_others(mapping, actor)

    async def get_request_channel(self, request_id: str) -> Channel:
        request = await self._load(request_id)
        channel = await self._channel_for(request)
        if channel is None:
            raise NotFoundError("No channel is configured for this consult's category")
        return channel

    # ------------------------------------------------------------------
    # Commands

    async def create_request(self, payload: CreateConsultRequest) -> Request:
        mapping = await self.mappings.get_by_category(payload.category)
        if mapping is None:
            logger.warning("Rejected consult for unknown category %s", payload.category)
            raise InvalidInputError(INVALID_CATEGORY)
        channel = await self.channels.get_by_channel_id(mapping.channel_id)
        if channel is None:
            logger.error(
                "Category %s maps to missing channel %s", payload.category, mapping.channel_id
            )
            raise InvalidInputError(CATEGORY_CLOSED)

        business, service = mapping.bookings_business, mapping.bookings_service
        request = Request(
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            customer_email=payload.customer_email,
            query=payload.query,
            category=payload.category,
            preferred_times=[block.model_copy() for block in payload.preferred_times],
            friendly_id=_friendly_id(),
            status=RequestStatus.UNASSIGNED,
            bookings_business_id=business.id if business else None,
            bookings_service_id=service.id if service else None,
        )
        try:
            await self.requests.add(request)
        except StoreConflictError as exc:
            raise ConflictError(CONCURRENT_UPDATE) from exc
        logger.info("consult %s created in %s", request.id, request.category)
        return await self._notify(NotificationOperation.CREATED, request, channel=channel)

    async def assign(
        self,
        request_id: str,
        actor: ActorIdentity | None,
        *,
        time_block: TimeBlock,
        comment: str | None = None,
        agent: IdName | None = None,
    ) -> Request:
        """Assign a consult to the caller or, for supervisors, another agent."""

        actor = _require_actor(actor)
        request = await self._load(request_id)
        self._guard(request, lifecycle.check_assignable)

        mapping = await self.mappings.get_by_category(request.category)
        if mapping is None:
            logger.error("consult %s: no mapping for category %s", request.id, request.category)
            raise NotFoundError(NOT_ASSIGNABLE_CATEGORY)

        self_assign = agent is None or agent.id == actor.object_id
        if not self_assign and not _may_assign_others(mapping, actor):
            logger.warning(
                "consult %s: %s may not assign %s", request.id, actor.object_id, agent.id
            )
            raise UnauthorizedError(NOT_A_SUPERVISOR, authenticated=True)

        assignee_id = actor.object_id if self_assign else agent.id
        assignee = await self.agents.get_by_object_id(assignee_id)
        if assignee is None:
            logger.error("consult %s: agent %s not registered", request.id, assignee_id)
            if self_assign:
                raise NotFoundError(CALLER_NOT_REGISTERED)
            raise InvalidInputError(AGENT_NOT_REGISTERED)

        result = await self.reconciler.reconcile(request, assignee, time_block)

        assignee_name = assignee.name or (agent.display_name if agent else actor.display_name)
        updated = lifecycle.apply_assignment(
            request,
            actor_id=actor.object_id,
            actor_name=actor.display_name,
            assignee_id=assignee_id,
            assignee_name=assignee_name,
            time_block=time_block,
            comment=comment,
        )
        if result.appointment is not None and not updated.bookings_appointment_id:
            updated.bookings_appointment_id = result.appointment.id
            updated.join_uri = result.appointment.join_uri

        committed = await self._commit(updated, request.etag)
        if assignee.bookings_staff_member_id != result.staff_member_id:
            await self._store_staff_id(assignee_id, result.staff_member_id)
        logger.info("consult %s assigned to %s", committed.id, assignee_id)
        return await self._notify(
            NotificationOperation.ASSIGNED,
            committed,
            actor=actor,
            assignee=IdName(id=assignee_id, display_name=assignee_name or assignee_id),
            comment=comment,
            locale=assignee.locale,
        )

    async def _store_staff_id(self, object_id: str, staff_id: str) -> None:
        """Cache ``staff_id`` on the agent without touching its other fields.

        The agent is re-read and written with its etag. The id is only a
        cache, so it is dropped after repeated conflicts.
        """

        for _ in range(STAFF_ID_WRITE_ATTEMPTS):
            current = await self.agents.get_by_object_id(object_id)
            if current is None or current.bookings_staff_member_id == staff_id:
                return
            current.bookings_staff_member_id = staff_id
            try:
                await self.agents.upsert(current, if_match=current.etag)
            except StoreConflictError:
                logger.info("agent %s: changed while caching staff id, retrying", object_id)
                continue
            logger.info("agent %s: staff member id refreshed", object_id)
            return
        logger.warning("agent %s: staff member id not cached after conflicts", object_id)

    async def request_reassignment(
        self,
        request_id: str,
        actor: ActorIdentity | None,
        *,
        agents: Sequence[IdName] = (),
        comment: str | None = None,
    ) -> Request:
        actor = _require_actor(actor)
        request = await self._load(request_id)
        self._guard(request, lifecycle.check_reassignable)

        mentions: list[IdName] = []
        for mention in agents:
            known = await self.agents.get_by_object_id(mention.id)
            if known is None:
                logger.warning(
                    "consult %s: mentioned agent %s not registered", request.id, mention.id
                )
                continue
            mentions.append(
                IdName(id=known.aad_object_id, display_name=known.name or mention.display_name)
            )

        updated = lifecycle.apply_reassign_request(
            request,
            actor_id=actor.object_id,
            actor_name=actor.display_name,
            comment=comment,
        )
        committed = await self._commit(updated, request.etag)
        logger.info("consult %s: reassignment requested by %s", committed.id, actor.object_id)
        return await self._notify(
            NotificationOperation.REASSIGN_REQUESTED,
            committed,
            actor=actor,
            comment=comment,
            mentions=mentions,
            locale=await self._locale_of(actor.object_id),
        )

    async def complete(
        self,
        request_id: str,
        actor: ActorIdentity | None,
        *,
        comment: str | None = None,
    ) -> Request:
        actor = _require_actor(actor)
        request = await self._load(request_id)
        self._guard(request, lifecycle.check_completable)

        updated = lifecycle.apply_completion(
            request,
            actor_id=actor.object_id,
            actor_name=actor.display_name,
            comment=comment,
        )
        committed = await self._commit(updated, request.etag)
        logger.info("consult %s completed by %s", committed.id, actor.object_id)
        return await self._notify(
            NotificationOperation.COMPLETED,
            committed,
            actor=actor,
            comment=comment,
            locale=await self._locale_of(actor.object_id),
        )

    async def add_note(self, request_id: str, actor: ActorIdentity | None, text: str) -> Note:
        actor = _require_actor(actor)
        if not text or not text.strip():
            raise InvalidInputError(EMPTY_NOTE)
        request = await self._load(request_id)
        updated, note = lifecycle.append_note(
            request,
            actor_id=actor.object_id,
            actor_name=actor.display_name,
            text=text.strip(),
        )
        await self._commit(updated, request.etag)
        return note

    async def add_attachment(
        self,
        request_id: str,
        actor: ActorIdentity | None,
        *,
        filename: str,
        uri: str,
        title: str = "",
    ) -> Attachment:
        actor = _require_actor(actor)
        request = await self._load(request_id)
        updated, attachment = lifecycle.append_attachment(
            request,
            actor_id=actor.object_id,
            actor_name=actor.display_name,
            filename=filename,
            uri=uri,
            title=title or filename,
        )
        await self._commit(updated, request.etag)
        return attachment


def _may_assign_others(mapping: ChannelMapping, actor: ActorIdentity) -> bool:
    if not mapping.supervisors:
        return True
    return any(s.id == actor.object_id for s in mapping.supervisors)


__all__ = ["ConsultService"]
