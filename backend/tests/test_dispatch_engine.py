from __future__ import annotations

from conftest import FakeProvider
from skybot.domain.conversation_state import Phase
from skybot.domain.slack_events import InteractionPayload, SlackMessageEvent
from skybot.domain.threads import ThreadKey
from skybot.services.dispatch_engine import EXPIRED_TEXT, NO_AGENT_TEXT

KEY = ThreadKey.parse("T1_U1_C1_101")

_seq = iter(range(1, 10_000))


def _event(text: str, *, thread_ts: str | None = "101", ts: str | None = None, event_id: str | None = None, **kw):
    n = next(_seq)
    return SlackMessageEvent(
        event_id=event_id or f"Ev{n}",
        team_id=kw.pop("team_id", "T1"),
        type=kw.pop("type", "message"),
        channel=kw.pop("channel", "C1"),
        user=kw.pop("user", "U1"),
        text=text,
        ts=ts or f"{200 + n}",
        thread_ts=thread_ts,
        **kw,
    )


def _press(engine, action_id: str, value: str = "T1_U1_C1_101"):
    engine.handle_interactive_callback(
        action_id, InteractionPayload(team_id="T1", user_id="U1", value=value, channel="C1")
    )


def test_unknown_command_counts_then_prompts_then_accept_answers(make_runtime, gateway):
    p = FakeProvider("p1", ["pong"])
    rt = make_runtime([p])
    engine = rt.engine

    for _ in range(3):
        engine.handle_event(_event("!foo"))

    assert "1/3" in gateway.sent[0]["text"]
    assert "2/3" in gateway.sent[1]["text"]
    blocks = gateway.sent[2]["blocks"]
    buttons = blocks[1]["elements"]
    assert [b["action_id"] for b in buttons] == ["confirm_ai_yes", "confirm_ai_no"]
    assert {b["value"] for b in buttons} == {"T1_U1_C1_101"}
    assert all(m["thread_ts"] == "101" for m in gateway.sent)
    assert rt.states.get(KEY).phase is Phase.PENDING_CONFIRMATION

    _press(engine, "confirm_ai_yes")

    assert gateway.sent[-1]["text"] == "pong"
    assert p.calls[0]["message"] == "foo"
    state = rt.states.get(KEY)
    assert state.in_ai_mode
    assert state.attempt_count == 0 and state.pending_escalation is None
    assert state.preferred_provider == "p1"


def test_attempts_beyond_threshold_reprompt_identically(make_runtime, gateway):
    engine = make_runtime().engine
    for _ in range(4):
        engine.handle_event(_event("!foo"))

    assert gateway.sent[2]["blocks"] == gateway.sent[3]["blocks"]
    assert engine.states.get(KEY).attempt_count == 3


def test_duplicate_event_is_handled_once(make_runtime, gateway):
    engine = make_runtime().engine
    engine.handle_event(_event("!foo", event_id="EvDup"))
    engine.handle_event(_event("!foo", event_id="EvDup"))

    assert len(gateway.sent) == 1
    assert engine.states.get(KEY).attempt_count == 1


def test_known_command_runs_and_resets_attempts(make_runtime, gateway):
    engine = make_runtime().engine
    engine.handle_event(_event("!foo"))
    engine.handle_event(_event("!foo"))
    engine.handle_event(_event("!PING"))

    assert gateway.sent[-1]["text"] == "pong!"
    assert engine.states.get(KEY).phase is Phase.IDLE
    assert len(engine.states) == 0


def test_mention_is_treated_as_addressed(make_runtime, gateway):
    engine = make_runtime().engine
    engine.handle_event(_event("<@UBOT> ping", type="app_mention", thread_ts=None))
    assert gateway.texts == ["pong!"]


def test_unaddressed_and_empty_messages_are_ignored(make_runtime, gateway):
    engine = make_runtime().engine
    engine.handle_event(_event("just chatting"))
    engine.handle_event(_event("<@UBOT>   ", type="app_mention"))
    engine.handle_event(_event("!"))
    assert gateway.sent == []
    assert len(engine.states) == 0


def test_bot_and_tokenless_events_are_dropped(make_runtime, gateway):
    engine = make_runtime().engine
    engine.handle_event(_event("!ping", bot_id="B1"))
    engine.handle_event(_event("!ping", subtype="message_changed"))
    assert gateway.sent == []

    tokenless = make_runtime(token=None).engine
    tokenless.handle_event(_event("!ping"))
    assert gateway.sent == []


def test_ai_mode_bypasses_commands_in_reply_threads(make_runtime, gateway):
    p = FakeProvider("p1", ["from ai"])
    rt = make_runtime([p])
    rt.states.update(KEY, lambda s: s.accept())

    rt.engine.handle_event(_event("!ping"))

    assert gateway.texts == ["from ai"]
    assert p.calls[0]["message"] == "ping"


def test_ai_mode_only_applies_inside_a_thread(make_runtime, gateway):
    p = FakeProvider("p1", ["from ai"])
    rt = make_runtime([p])
    top_level = ThreadKey.parse("T1_U1_C1_900")
    rt.states.update(top_level, lambda s: s.accept())

    rt.engine.handle_event(_event("!ping", thread_ts=None, ts="900"))

    assert gateway.texts == ["pong!"]
    assert p.calls == []


def test_ai_mode_history_grows_by_two_per_reply(make_runtime, gateway):
    p = FakeProvider("p1", ["hi!", "still here"])
    rt = make_runtime([p])
    rt.states.update(KEY, lambda s: s.accept())

    rt.engine.handle_event(_event("hello"))
    turns = rt.history.load(KEY)
    assert [(t.role, t.content) for t in turns] == [("user", "hello"), ("assistant", "hi!")]

    rt.engine.handle_event(_event("and again"))
    assert len(rt.history.load(KEY)) == 4


def test_all_providers_failing_sends_soft_notice(make_runtime, gateway):
    rt = make_runtime([FakeProvider("p1", [RuntimeError("down")])])
    rt.states.update(KEY, lambda s: s.accept())
    rt.engine.handle_event(_event("hello"))
    assert gateway.texts == [NO_AGENT_TEXT]


def test_accept_without_pending_is_expired_and_changes_nothing(make_runtime, gateway):
    rt = make_runtime()
    rt.states.update(KEY, lambda s: s.record_unmatched(max_attempts=3))
    before = rt.states.get(KEY)

    _press(rt.engine, "confirm_ai_yes")

    assert gateway.texts == [EXPIRED_TEXT]
    assert rt.states.get(KEY) == before


def test_decline_clears_everything(make_runtime, gateway):
    rt = make_runtime()
    for _ in range(3):
        rt.engine.handle_event(_event("!foo"))

    _press(rt.engine, "confirm_ai_no")

    assert "3 more times" in gateway.texts[-1]
    assert rt.states.get(KEY).is_empty


def test_decline_without_pending_still_clears_ai_mode(make_runtime, gateway):
    rt = make_runtime()
    rt.states.update(KEY, lambda s: s.accept().with_provider("p1"))

    _press(rt.engine, "confirm_ai_no")

    assert gateway.texts == [EXPIRED_TEXT]
    state = rt.states.get(KEY)
    assert not state.in_ai_mode and state.preferred_provider is None and state.attempt_count == 0


def test_button_presses_are_audited(make_runtime, interactions):
    rt = make_runtime()
    _press(rt.engine, "confirm_ai_yes")
    assert interactions.records[-1]["kind"] == "button"
    assert interactions.records[-1]["success"] is False


def test_invalid_button_value_is_ignored(make_runtime, gateway):
    rt = make_runtime()
    _press(rt.engine, "confirm_ai_yes", value="garbage")
    assert gateway.sent == []


def test_deactivate_thread_turns_ai_mode_off(make_runtime, fake_table):
    rt = make_runtime([FakeProvider("p1", ["hi"])])
    rt.states.update(KEY, lambda s: s.accept())
    rt.engine.handle_event(_event("hello"))

    assert rt.engine.deactivate_thread("T1_U1_C1_101") is True
    assert not rt.states.get(KEY).in_ai_mode
    assert fake_table.items[("AGENTCONV#T1_U1_C1_101", "PROFILE")]["isActive"] is False
    assert rt.engine.deactivate_thread(KEY) is False
