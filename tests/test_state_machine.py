"""Conversation tests for the draft state machine, heuristics only."""

from unittest.mock import MagicMock

from classes import messages
from classes.dispatch_gate import DispatchGate
from classes.draft_models import Mode
from classes.draft_state_machine import HANDLERS, DraftStateMachine
from classes.errors import DispatchError


def test_every_mode_has_a_handler():
    assert set(HANDLERS) == set(Mode)


class TestSingleDraft:
    """One problem from first message to dispatch."""

    def test_happy_path_dispatches_once(self, chat, channel):
        chat.say("el aire no funciona")
        assert chat.mode == Mode.ASK_PLACE

        chat.say("1205")
        assert chat.mode == Mode.CHOOSE_AREA_SINGLE
        assert chat.session.draft.place == "Habitación 1205"

        chat.say("1")
        assert chat.mode == Mode.CONFIRM
        assert chat.session.draft.area_code == "man"

        out = chat.say("si")

        assert [t["folio"] for t in out.tickets] == ["MAN-001"]
        assert chat.mode == Mode.NEUTRAL
        assert chat.session.draft is None
        assert len(channel.texts_to("grp-mantenimiento")) == 1

    def test_complete_first_message_goes_straight_to_preview(self, chat):
        out = chat.say("la tv no prende en la 1205")

        assert chat.mode == Mode.CONFIRM
        assert chat.session.draft.area_code == "it"
        assert out.tickets == []

    def test_cancel_from_preview(self, chat, dispatchable_draft):
        chat.session.draft = dispatchable_draft()
        chat.session.set_mode(Mode.CONFIRM)

        out = chat.say("cancelar")

        assert out.replies == [messages.CANCELED]
        assert chat.mode == Mode.NEUTRAL
        assert chat.session.is_bare()

    def test_negated_confirmation_never_dispatches(self, chat, channel, dispatchable_draft):
        for text in ("no confirmo", "no está bien", "no, así no está bien"):
            chat.session.draft = dispatchable_draft()
            chat.session.set_mode(Mode.CONFIRM)

            out = chat.say(text)

            assert out.tickets == []
            assert out.replies == [messages.CANCELED]
            assert chat.session.is_bare()
        assert channel.sent == []

    def test_media_attaches_to_the_new_draft(self, chat):
        chat.say("el aire no funciona", media_ids=["media-1"])

        assert chat.session.draft.pending_media == ["media-1"]


class TestNeutral:

    def test_greeting_shows_help(self, chat):
        out = chat.say("hola")

        assert out.replies == [messages.HELP_TEXT]
        assert chat.mode == Mode.NEUTRAL
        assert chat.session.draft is None

    def test_small_talk_does_not_start_a_draft(self, chat):
        assert chat.say("gracias").replies == [messages.NOT_UNDERSTOOD]
        assert chat.say("cancelar").replies == [messages.NOTHING_TO_CANCEL]
        assert chat.session.is_bare()


class TestBatch:

    def _batch(self, chat, *drafts):
        chat.session.multiple_drafts = list(drafts)
        chat.session.renumber_drafts()
        chat.session.set_mode(Mode.MULTIPLE_TICKETS)

    def test_send_one_keeps_the_rest_renumbered(self, chat, dispatchable_draft):
        self._batch(
            chat,
            dispatchable_draft(description="El aire no funciona"),
            dispatchable_draft(description="La tv no prende", area_code="it"),
            dispatchable_draft(description="Gotea la regadera"),
        )

        out = chat.say("enviar 2")

        assert [t["folio"] for t in out.tickets] == ["IT-001"]
        assert chat.mode == Mode.MULTIPLE_TICKETS
        drafts = chat.session.multiple_drafts
        assert [d.description for d in drafts] == ["El aire no funciona", "Gotea la regadera"]
        assert [d.ticket_number for d in drafts] == [1, 2]

    def test_edit_one_works_on_a_copy_until_saved(self, chat, dispatchable_draft):
        self._batch(chat, dispatchable_draft(), dispatchable_draft(description="La tv no prende", area_code="it"))

        chat.say("editar 2")
        assert chat.mode == Mode.EDIT_MULTIPLE_TICKET
        assert chat.session.editing_index == 1

        chat.say("en el lobby")
        assert chat.session.working_copy.place == "Lobby"
        assert chat.session.multiple_drafts[1].place == "Habitación 1205"

        chat.say("listo")

        assert chat.mode == Mode.MULTIPLE_TICKETS
        assert chat.session.working_copy is None
        assert chat.session.multiple_drafts[1].place == "Lobby"

    def test_delete_one_renumbers(self, chat, dispatchable_draft):
        self._batch(
            chat,
            dispatchable_draft(description="El aire no funciona"),
            dispatchable_draft(description="La tv no prende", area_code="it"),
            dispatchable_draft(description="Gotea la regadera"),
        )

        out = chat.say("borrar 1")

        assert out.tickets == []
        assert chat.mode == Mode.MULTIPLE_TICKETS
        drafts = chat.session.multiple_drafts
        assert [d.description for d in drafts] == ["La tv no prende", "Gotea la regadera"]
        assert [d.ticket_number for d in drafts] == [1, 2]

    def test_one_draft_left_goes_back_to_single_flow(self, chat, dispatchable_draft):
        self._batch(chat, dispatchable_draft(), dispatchable_draft(description="La tv no prende", area_code="it"))

        chat.say("borrar 2")

        assert chat.session.multiple_drafts == []
        assert chat.session.draft.description == "El aire no funciona"
        assert chat.session.draft.ticket_number is None
        assert chat.mode == Mode.CONFIRM

    def test_negated_batch_confirmation_sends_nothing(self, chat, channel, dispatchable_draft):
        self._batch(chat, dispatchable_draft(), dispatchable_draft(description="La tv no prende", area_code="it"))
        chat.session.set_mode(Mode.CONFIRM_BATCH)

        out = chat.say("no confirmo")

        assert out.tickets == []
        assert chat.mode == Mode.MULTIPLE_TICKETS
        assert len(chat.session.multiple_drafts) == 2
        assert channel.sent == []

    def test_two_problems_send_all(self, chat, channel):
        chat.say("no funciona el aire en la 1205 y la tv no prende")
        assert chat.mode == Mode.MULTIPLE_TICKETS
        drafts = chat.session.multiple_drafts
        assert [d.ticket_number for d in drafts] == [1, 2]
        assert [d.place for d in drafts] == ["Habitación 1205", "Habitación 1205"]
        assert drafts[1].area_code == "it"

        chat.say("enviar todos")
        assert chat.mode == Mode.ASK_AREA_MULTIPLE
        assert chat.session.editing_index == 0

        chat.say("mantenimiento")
        assert chat.mode == Mode.CONFIRM_BATCH

        out = chat.say("si")

        assert sorted(t["folio"] for t in out.tickets) == ["IT-001", "MAN-001"]
        assert chat.mode == Mode.NEUTRAL
        assert channel.texts_to("grp-it")

    def test_new_problem_while_asking_place_can_keep_both(self, chat):
        chat.say("el aire no funciona")
        chat.say("la tv no prende en la 1311")
        assert chat.mode == Mode.ASK_PLACE_CONFLICT

        chat.say("1")

        assert len(chat.session.multiple_drafts) == 2
        assert chat.session.multiple_drafts[1].place == "Habitación 1311"
        assert chat.mode == Mode.ASK_PLACE
        assert chat.session.editing_index == 0


class TestPlaces:

    def test_freeform_place_is_accepted_on_second_attempt(self, chat):
        chat.say("el aire no funciona")

        chat.say("pasillo norte")
        assert chat.mode == Mode.ASK_PLACE

        chat.say("pasillo norte")

        assert chat.session.draft.place == "Pasillo norte"
        assert chat.session.draft.place_freeform is True
        assert chat.mode == Mode.CHOOSE_AREA_SINGLE

    def test_bare_room_in_preview_asks_before_changing(self, chat, dispatchable_draft):
        chat.session.draft = dispatchable_draft()
        chat.session.set_mode(Mode.CONFIRM)

        chat.say("1311")
        assert chat.mode == Mode.FOLLOWUP_PLACE_DECISION
        assert chat.session.draft.place == "Habitación 1205"

        chat.say("1")

        assert chat.session.draft.place == "Habitación 1311"
        assert chat.mode == Mode.CONFIRM

    def test_edit_menu_changes_place(self, chat, dispatchable_draft):
        chat.session.draft = dispatchable_draft()
        chat.session.set_mode(Mode.CONFIRM)

        chat.say("editar")
        assert chat.mode == Mode.EDIT_MENU
        chat.say("2")
        assert chat.mode == Mode.ASK_PLACE
        chat.say("lobby")

        assert chat.session.draft.place == "Lobby"
        assert chat.mode == Mode.CONFIRM


class TestInterruptions:

    def test_greeting_mid_draft_offers_to_continue(self, chat):
        chat.say("el aire no funciona")
        chat.say("hola")
        assert chat.mode == Mode.CONTEXT_SWITCH

        out = chat.say("continuar")

        assert chat.mode == Mode.ASK_PLACE
        assert out.replies == [messages.ASK_PLACE]
        assert chat.session.draft.description == "El aire no funciona"

    def test_repeated_misses_offer_recovery(self, chat):
        chat.say("el aire no funciona")
        chat.say("1205")
        assert chat.mode == Mode.CHOOSE_AREA_SINGLE

        chat.say("xyz")
        chat.say("xyz")
        assert chat.mode == Mode.CHOOSE_AREA_SINGLE
        chat.say("xyz")
        assert chat.mode == Mode.CONFUSED_RECOVERY

        chat.say("continuar")
        assert chat.mode == Mode.CHOOSE_AREA_SINGLE


class TestDispatchFailure:

    def test_failed_persist_keeps_draft_for_retry(self, channel, dispatch_cache, catalog, dispatchable_draft, conversation):
        repository = MagicMock()
        repository.create_ticket.side_effect = DispatchError("database unavailable")
        machine = DraftStateMachine(catalog, DispatchGate(repository, channel, dispatch_cache, catalog))
        chat = conversation(machine)
        chat.session.draft = dispatchable_draft()
        chat.session.set_mode(Mode.CONFIRM)

        out = chat.say("si")

        assert out.replies == [messages.DISPATCH_RETRY]
        assert out.tickets == []
        assert chat.mode == Mode.CONFIRM
        assert chat.session.draft is not None
        assert channel.sent == []

        repository.create_ticket.side_effect = None
        repository.create_ticket.return_value = {"id": "t-1", "folio": "MAN-007"}

        out = chat.say("si")

        assert out.tickets[0]["folio"] == "MAN-007"
        assert chat.mode == Mode.NEUTRAL
