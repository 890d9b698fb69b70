from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from core.errors import (
    AlreadyClaimedError,
    AlreadyClosedError,
    AlreadyPendingError,
    BannedUserError,
    ChannelCreateError,
    PermissionDeniedError,
    TicketLimitReachedError,
    UnknownTicketChannelError,
    ValidationError,
)
from core.platform import MEMBER, ROLE, ChannelMessage
from database.models import CategoryQuestion
from fakes import (
    BOT_USER_ID,
    GUILD_ID,
    LOG_CHANNEL_ID,
    SUPPORT_ROLE_ID,
    FakeResponder,
    Services,
    make_actor,
)
from services.ticket_service import CLOSE_PROMPT, TicketService
from utils.constants import (
    ID_CANCEL_CLOSE,
    ID_CLAIM_TICKET,
    ID_CLOSE_TICKET,
    ID_CONFIRM_CLOSE,
    ID_OPEN_TICKET,
    MAX_EMBED_DESCRIPTION_LENGTH,
    STATUS_CLOSED,
    STATUS_OPEN,
)

OPENER = make_actor(42, "alice")
STAFF = make_actor(7, "bob", roles=(SUPPORT_ROLE_ID,))
OTHER_STAFF = make_actor(8, "carol", roles=(SUPPORT_ROLE_ID,))
ADMIN = make_actor(1, "root", is_admin=True)
STRANGER = make_actor(99, "mallory")


async def _open(services: Services, opener=OPENER, category_id=None, reason="printer on fire"):
    responder = FakeResponder()
    ticket = await services.ticket_service.create(
        GUILD_ID, opener, category_id, [("ticket_reason", reason)], responder
    )
    return ticket, responder


async def _drain_deletions(service: TicketService) -> None:
    if service.pending_deletions:
        await asyncio.gather(*list(service.pending_deletions))


def test_sanitize_channel_fragment() -> None:
    assert TicketService.sanitize_channel_fragment("Hello World !!!") == "HelloWorld"
    assert TicketService.sanitize_channel_fragment("ünï-cødé_42") == "ncd42"


def test_build_channel_name_truncates(services: Services) -> None:
    name = services.ticket_service.build_channel_name("billing", "averyveryverylongusername")
    assert name == "billing-averyveryverylong"
    assert len(name) == 25


@pytest.mark.asyncio
async def test_default_ticket_creation(services: Services) -> None:
    ticket, responder = await _open(services)

    assert responder.defers == [True]
    assert responder.edits[-1].content == f"✅ Ticket created: <#{ticket.channel_id}>"

    channel = services.platform.created[0]
    assert channel.name == "ticket-alice"
    assert channel.parent_id is None
    kinds = {(grant.principal_id, grant.kind) for grant in channel.grants}
    assert (GUILD_ID, ROLE) in kinds
    assert (OPENER.id, MEMBER) in kinds
    assert (BOT_USER_ID, MEMBER) in kinds

    stored = await services.tickets.get_by_channel(ticket.channel_id)
    assert stored is not None
    assert stored.status == STATUS_OPEN
    assert stored.opener_id == OPENER.id
    assert stored.category_label == "ticket"
    assert stored.description == "printer on fire"

    intro = services.platform.messages_to(ticket.channel_id)[0]
    assert intro.content == OPENER.mention
    assert "printer on fire" in intro.embed.description
    button_ids = [item.custom_id for item in intro.components[0].items]
    assert button_ids == [ID_CLOSE_TICKET, ID_CLAIM_TICKET]


@pytest.mark.asyncio
async def test_category_ticket_uses_category_name_and_parent(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, ticket_parent_id=321, support_role_id=SUPPORT_ROLE_ID)
    category = await services.registry.create_category(
        GUILD_ID, "Billing", "💳", questions=[CategoryQuestion("Invoice number")]
    )

    responder = FakeResponder()
    ticket = await services.ticket_service.create(
        GUILD_ID, OPENER, category.id, [("question_0", "INV-7")], responder
    )

    channel = services.platform.created[0]
    assert channel.name == "billing-alice"
    assert channel.parent_id == 321
    assert ticket.category_id == category.id
    assert ticket.description == "**question_0**: INV-7"
    staff_grant = services.platform.permissions[ticket.channel_id][SUPPORT_ROLE_ID]
    assert staff_grant.kind == ROLE


@pytest.mark.asyncio
async def test_banned_user_cannot_open(services: Services) -> None:
    await services.bans.upsert(OPENER.id, "alice", True, "spam", banned_by_id=ADMIN.id)
    responder = FakeResponder()

    with pytest.raises(BannedUserError) as excinfo:
        await services.ticket_service.create(GUILD_ID, OPENER, None, [], responder)

    assert "Reason: spam" in excinfo.value.user_message
    assert responder.defers == []
    assert services.platform.created == []


@pytest.mark.asyncio
async def test_unbanned_user_can_open_again(services: Services) -> None:
    await services.bans.upsert(OPENER.id, "alice", True, "spam")
    await services.bans.upsert(OPENER.id, "alice", False)

    ticket, _ = await _open(services)
    assert ticket.opener_id == OPENER.id


@pytest.mark.asyncio
async def test_open_ticket_limit(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, max_tickets_per_user=1)
    await _open(services)

    with pytest.raises(TicketLimitReachedError):
        await _open(services)
    assert len(services.platform.created) == 1


@pytest.mark.asyncio
async def test_creation_cooldown(services: Services) -> None:
    services.ticket_service.config.creation_cooldown_seconds = 30
    await _open(services)

    with pytest.raises(ValidationError):
        await _open(services)


@pytest.mark.asyncio
async def test_channel_create_failure_persists_nothing(services: Services) -> None:
    services.platform.fail_create = True

    with pytest.raises(ChannelCreateError):
        await _open(services)
    assert await services.tickets.count_open_by_user(GUILD_ID, OPENER.id) == 0


@pytest.mark.asyncio
async def test_intro_failure_keeps_ticket(services: Services) -> None:
    services.platform.fail_send_to.add(50_001)
    ticket, responder = await _open(services)

    assert ticket.channel_id == 50_001
    assert await services.tickets.get_by_channel(ticket.channel_id) is not None
    assert responder.edits[-1].content.startswith("✅ Ticket created")


@pytest.mark.asyncio
async def test_intro_embed_stays_within_description_limit(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, welcome_message="w" * 1000)
    category = await services.registry.create_category(
        GUILD_ID, "Hardware", questions=[CategoryQuestion(f"Question {n}") for n in range(5)]
    )
    form = services.registry.build_form(category)
    answers = [(field.custom_id, "x" * field.max_length) for field in form.fields]
    assert len(answers) == 5

    ticket = await services.ticket_service.create(GUILD_ID, OPENER, category.id, answers, FakeResponder())

    intro = services.platform.messages_to(ticket.channel_id)[0]
    assert len(intro.embed.description) <= MAX_EMBED_DESCRIPTION_LENGTH
    assert intro.embed.description.endswith("w" * 1000)
    assert "…" in intro.embed.description
    assert [item.custom_id for item in intro.components[0].items] == [ID_CLOSE_TICKET, ID_CLAIM_TICKET]


@pytest.mark.asyncio
async def test_failed_channel_create_does_not_spend_cooldown(services: Services) -> None:
    services.ticket_service.config.creation_cooldown_seconds = 30
    services.platform.fail_create = True
    with pytest.raises(ChannelCreateError):
        await _open(services)

    services.platform.fail_create = False
    ticket, responder = await _open(services)

    assert ticket.opener_id == OPENER.id
    assert responder.edits[-1].content.startswith("✅ Ticket created")


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, support_role_id=SUPPORT_ROLE_ID)
    ticket, _ = await _open(services)
    first, second = FakeResponder(), FakeResponder()

    results = await asyncio.gather(
        services.ticket_service.claim(STAFF, ticket.channel_id, first),
        services.ticket_service.claim(OTHER_STAFF, ticket.channel_id, second),
        return_exceptions=True,
    )

    errors = [result for result in results if isinstance(result, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], AlreadyClaimedError)
    stored = await services.tickets.get_by_id(ticket.id)
    assert stored.claimed_by_id in {STAFF.id, OTHER_STAFF.id}
    sent = services.platform.messages_to(ticket.channel_id)
    claims = [message for message in sent if "claimed" in (message.embed.description or "")]
    assert len(claims) == 1


@pytest.mark.asyncio
async def test_claim_requires_staff(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, support_role_id=SUPPORT_ROLE_ID)
    ticket, _ = await _open(services)

    with pytest.raises(PermissionDeniedError):
        await services.ticket_service.claim(OPENER, ticket.channel_id, FakeResponder())


@pytest.mark.asyncio
async def test_claim_outside_ticket_channel(services: Services) -> None:
    with pytest.raises(UnknownTicketChannelError):
        await services.ticket_service.claim(ADMIN, 123456, FakeResponder())


@pytest.mark.asyncio
async def test_staff_close_schedules_deletion(services: Services) -> None:
    await services.guild_configs.upsert(
        GUILD_ID, support_role_id=SUPPORT_ROLE_ID, transcript_channel_id=LOG_CHANNEL_ID
    )
    ticket, _ = await _open(services)
    services.platform.history[ticket.channel_id] = [
        ChannelMessage(OPENER.id, OPENER.tag, "help", datetime(2024, 1, 1, 12, 0, tzinfo=UTC)),
    ]
    services.ticket_service.config.close_delete_delay_seconds = 60
    responder = FakeResponder()

    await services.ticket_service.request_close(STAFF, ticket.channel_id, responder)

    assert responder.edits[-1].content == "🔒 Closing ticket..."
    assert ticket.channel_id not in services.platform.deleted
    assert len(services.ticket_service.pending_deletions) == 1

    stored = await services.tickets.get_by_id(ticket.id)
    assert stored.status == STATUS_CLOSED
    assert stored.closed_by_id == STAFF.id
    assert "[2024-01-01 12:00:00 UTC] alice#0001: help" in stored.transcript

    log = services.platform.messages_to(LOG_CHANNEL_ID)[0]
    assert log.embed.title == f"📄 Ticket Closed: {ticket.channel_id}"
    assert log.files[0].filename == f"transcript-{ticket.id}.txt"

    for task in list(services.ticket_service.pending_deletions):
        task.cancel()


@pytest.mark.asyncio
async def test_close_log_attaches_html_transcript(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, transcript_channel_id=LOG_CHANNEL_ID)
    services.transcripts.config.html_enabled = True
    ticket, _ = await _open(services)
    services.platform.history[ticket.channel_id] = [
        ChannelMessage(OPENER.id, OPENER.tag, "<b>help</b>", datetime(2024, 1, 1, 12, 0, tzinfo=UTC)),
    ]

    await services.ticket_service.request_close(ADMIN, ticket.channel_id, FakeResponder())
    await _drain_deletions(services.ticket_service)

    log = services.platform.messages_to(LOG_CHANNEL_ID)[0]
    names = [attachment.filename for attachment in log.files]
    assert names == [f"transcript-{ticket.id}.txt", f"transcript-{ticket.id}.html"]
    assert b"&lt;b&gt;help&lt;/b&gt;" in log.files[1].content


@pytest.mark.asyncio
async def test_close_deletes_channel_after_grace(services: Services) -> None:
    ticket, _ = await _open(services)

    await services.ticket_service.request_close(ADMIN, ticket.channel_id, FakeResponder())
    await _drain_deletions(services.ticket_service)

    assert services.platform.deleted == [ticket.channel_id]


@pytest.mark.asyncio
async def test_close_twice_is_rejected(services: Services) -> None:
    ticket, _ = await _open(services)
    await services.ticket_service.close(ticket, ADMIN.id)
    before = (await services.tickets.get_by_id(ticket.id)).transcript

    with pytest.raises(AlreadyClosedError):
        await services.ticket_service.request_close(ADMIN, ticket.channel_id, FakeResponder())
    await _drain_deletions(services.ticket_service)
    assert (await services.tickets.get_by_id(ticket.id)).transcript == before
    assert services.platform.deleted == [ticket.channel_id]


@pytest.mark.asyncio
async def test_concurrent_closes_have_one_winner(services: Services) -> None:
    ticket, _ = await _open(services)
    copy_a = await services.tickets.get_by_id(ticket.id)
    copy_b = await services.tickets.get_by_id(ticket.id)

    results = await asyncio.gather(
        services.ticket_service.close(copy_a, ADMIN.id),
        services.ticket_service.close(copy_b, STAFF.id),
        return_exceptions=True,
    )

    assert sum(isinstance(result, AlreadyClosedError) for result in results) == 1
    await _drain_deletions(services.ticket_service)
    assert services.platform.deleted == [ticket.channel_id]


@pytest.mark.asyncio
async def test_close_survives_transcript_failure(services: Services) -> None:
    ticket, _ = await _open(services)
    services.platform.fail_history = True

    closed = await services.ticket_service.close(ticket, ADMIN.id)

    assert closed.status == STATUS_CLOSED
    assert closed.transcript is None
    await _drain_deletions(services.ticket_service)


@pytest.mark.asyncio
async def test_member_close_request_and_confirm(services: Services) -> None:
    ticket, _ = await _open(services)
    request = FakeResponder()

    await services.ticket_service.request_close(OPENER, ticket.channel_id, request)

    prompt = request.replies[0]
    assert prompt.content == CLOSE_PROMPT
    assert prompt.ephemeral is False
    assert [item.custom_id for item in prompt.components[0].items] == [ID_CONFIRM_CLOSE, ID_CANCEL_CLOSE]
    pending = await services.tickets.get_by_id(ticket.id)
    assert pending.close_requested_by_id == OPENER.id
    assert pending.status == STATUS_OPEN

    with pytest.raises(AlreadyPendingError):
        await services.ticket_service.request_close(OPENER, ticket.channel_id, FakeResponder())

    with pytest.raises(PermissionDeniedError):
        await services.ticket_service.confirm_close(STRANGER, ticket.channel_id, FakeResponder())

    await services.ticket_service.confirm_close(OPENER, ticket.channel_id, FakeResponder())
    closed = await services.tickets.get_by_id(ticket.id)
    assert closed.status == STATUS_CLOSED
    assert closed.close_requested_by_id is None
    await _drain_deletions(services.ticket_service)


@pytest.mark.asyncio
async def test_cancel_close_clears_request(services: Services) -> None:
    ticket, _ = await _open(services)
    await services.ticket_service.request_close(OPENER, ticket.channel_id, FakeResponder())
    cancel = FakeResponder()

    await services.ticket_service.cancel_close(OPENER, ticket.channel_id, cancel)

    assert cancel.source_deleted is True
    stored = await services.tickets.get_by_id(ticket.id)
    assert stored.close_requested_by_id is None
    assert stored.status == STATUS_OPEN

    await services.ticket_service.request_close(OPENER, ticket.channel_id, FakeResponder())
    assert (await services.tickets.get_by_id(ticket.id)).close_requested_by_id == OPENER.id


@pytest.mark.asyncio
async def test_failed_prompt_releases_close_request(services: Services) -> None:
    ticket, _ = await _open(services)

    with pytest.raises(RuntimeError):
        await services.ticket_service.request_close(OPENER, ticket.channel_id, FakeResponder(fail_reply=True))

    assert (await services.tickets.get_by_id(ticket.id)).close_requested_by_id is None


@pytest.mark.asyncio
async def test_add_and_remove_user(services: Services) -> None:
    ticket, _ = await _open(services)
    add = FakeResponder()

    await services.ticket_service.add_user(OPENER, ticket.channel_id, 314, add)

    assert 314 in services.platform.permissions[ticket.channel_id]
    assert add.replies[0].content == "✅ Added <@314> to the ticket."
    assert add.replies[0].ephemeral is False

    await services.ticket_service.remove_user(OPENER, ticket.channel_id, 314, FakeResponder())
    assert 314 not in services.platform.permissions[ticket.channel_id]

    with pytest.raises(ValidationError):
        await services.ticket_service.remove_user(ADMIN, ticket.channel_id, OPENER.id, FakeResponder())
    with pytest.raises(PermissionDeniedError):
        await services.ticket_service.add_user(STRANGER, ticket.channel_id, 315, FakeResponder())


@pytest.mark.asyncio
async def test_add_user_outside_ticket(services: Services) -> None:
    with pytest.raises(ValidationError) as excinfo:
        await services.ticket_service.add_user(ADMIN, 123, 314, FakeResponder())
    assert excinfo.value.user_message == "❌ This is not an open ticket channel."


@pytest.mark.asyncio
async def test_ban_and_unban_require_admin(services: Services) -> None:
    with pytest.raises(PermissionDeniedError):
        await services.ticket_service.ban_user(STAFF, OPENER.id, "alice", "spam", FakeResponder())

    responder = FakeResponder()
    await services.ticket_service.ban_user(ADMIN, OPENER.id, "alice", "spam", responder)
    assert responder.replies[0].content == f"🚫 Banned <@{OPENER.id}> from using tickets.\nReason: spam"
    assert (await services.bans.get(OPENER.id)).is_banned is True

    await services.ticket_service.unban_user(ADMIN, OPENER.id, "", FakeResponder())
    ban = await services.bans.get(OPENER.id)
    assert ban.is_banned is False
    assert ban.username == "alice"


@pytest.mark.asyncio
async def test_legacy_panel(services: Services) -> None:
    responder = FakeResponder()

    await services.ticket_service.send_legacy_panel(ADMIN, 4242, responder)

    assert responder.replies[0].content == "✅ Panel sent!"
    panel = services.platform.messages_to(4242)[0]
    assert panel.components[0].items[0].custom_id == ID_OPEN_TICKET
    assert panel.embed.footer.text == "Powered by TicketBot"


@pytest.mark.asyncio
async def test_sweep_closes_idle_tickets(services: Services) -> None:
    await services.guild_configs.upsert(GUILD_ID, auto_close_hours=24)
    idle, _ = await _open(services)
    busy, _ = await _open(services, opener=make_actor(43, "dave"))
    now = datetime.now(UTC)
    services.platform.history[idle.channel_id] = [
        ChannelMessage(OPENER.id, OPENER.tag, "anyone?", now - timedelta(hours=30)),
    ]
    services.platform.history[busy.channel_id] = [
        ChannelMessage(43, "dave#0001", "still here", now - timedelta(hours=1)),
    ]

    closed = await services.ticket_service.sweep_inactive(now)

    assert closed == 1
    assert (await services.tickets.get_by_id(idle.id)).closed_by_id == BOT_USER_ID
    assert (await services.tickets.get_by_id(busy.id)).status == STATUS_OPEN
    await _drain_deletions(services.ticket_service)
