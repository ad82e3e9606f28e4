from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure `backend/` is on sys.path so `import skybot.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))


def _split_top_level(expr: str) -> list[str]:
    out: list[str] = []
    depth = 0
    cur = ""
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            out.append(cur.strip())
            cur = ""
            continue
        cur += ch
    if cur.strip():
        out.append(cur.strip())
    return out


class FakeTable:
    """
    Minimal in-memory stand-in for DynamoTable used by repositories.

    Understands plain ``SET a = :v`` updates, ``if_not_exists``, a trailing
    ``REMOVE a, b`` clause and the ``attribute_exists(pk)`` /
    ``attribute_not_exists(pk)`` conditions.
    """

    def __init__(self):
        # Keyed by (pk, sk)
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _conflict(self, operation: str, pk: str, sk: str):
        from skybot.db.dynamodb.errors import DdbConflict

        return DdbConflict(message="conflict", operation=operation, table_name="Fake", key={"pk": pk, "sk": sk})

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any] | None:
        self._check()
        it = self.items.get((str(key.get("pk") or ""), str(key.get("sk") or "")))
        return dict(it) if it else None

    def put_item(self, *, item: dict[str, Any], condition_expression: str | None = None, **_kw) -> dict[str, Any]:
        self._check()
        pk = str(item.get("pk") or "")
        sk = str(item.get("sk") or "")
        if condition_expression and "attribute_not_exists(pk)" in condition_expression:
            if (pk, sk) in self.items:
                raise self._conflict("PutItem", pk, sk)
        self.items[(pk, sk)] = dict(item)
        return {"ok": True}

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any],
        condition_expression: str | None = None,
        **_kw,
    ) -> dict[str, Any] | None:
        self._check()
        pk = str(key.get("pk") or "")
        sk = str(key.get("sk") or "")
        exists = (pk, sk) in self.items
        if condition_expression and "attribute_exists(pk)" in condition_expression and not exists:
            raise self._conflict("UpdateItem", pk, sk)

        names = expression_attribute_names or {}
        values = expression_attribute_values
        current = dict(self.items.get((pk, sk)) or {"pk": pk, "sk": sk})
        assert update_expression.startswith("SET ")
        set_part, _, remove_part = update_expression[len("SET ") :].partition(" REMOVE ")
        for assignment in _split_top_level(set_part):
            lhs, rhs = (s.strip() for s in assignment.split("=", 1))
            attr = names.get(lhs, lhs)
            if rhs.startswith("if_not_exists("):
                inner_attr, placeholder = (s.strip() for s in rhs[len("if_not_exists(") : -1].split(","))
                inner_attr = names.get(inner_attr, inner_attr)
                current[attr] = current[inner_attr] if inner_attr in current else values[placeholder]
            else:
                current[attr] = values[rhs]
        for attr in (a.strip() for a in remove_part.split(",") if a.strip()):
            current.pop(names.get(attr, attr), None)
        self.items[(pk, sk)] = current
        return dict(current)

    def query_page(self, *, key_condition_expression, index_name=None, limit=50, scan_index_forward=False, **_kw):
        from skybot.db.dynamodb.table import Page

        self._check()
        # Only single-attribute equality conditions, e.g. Key("gsi1pk").eq(...).
        expr = key_condition_expression.get_expression()
        attr, value = expr["values"][0].name, expr["values"][1]
        sort_attr = "gsi1sk" if index_name == "GSI1" else "sk"
        matched = [dict(it) for it in self.items.values() if it.get(attr) == value]
        matched.sort(key=lambda it: str(it.get(sort_attr) or ""), reverse=not scan_index_forward)
        return Page(items=matched[:limit], last_evaluated_key=None)


@pytest.fixture
def fake_table(monkeypatch) -> FakeTable:
    from skybot.repositories import agent_conversations_repo, interactions_repo, slack_tokens_repo

    table = FakeTable()
    for mod in (agent_conversations_repo, interactions_repo, slack_tokens_repo):
        monkeypatch.setattr(mod, "get_main_table", lambda: table)
    return table


class FakeGateway:
    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    def send_text(self, access_token, channel, text, thread_ts=None) -> bool:
        self.sent.append({"token": access_token, "channel": channel, "text": text, "thread_ts": thread_ts})
        return True

    def send_blocks(self, access_token, channel, blocks, thread_ts=None, text=None) -> bool:
        self.sent.append(
            {"token": access_token, "channel": channel, "text": text, "blocks": blocks, "thread_ts": thread_ts}
        )
        return True

    @property
    def texts(self) -> list[str]:
        return [str(m.get("text") or "") for m in self.sent]


class FakeTokens:
    def __init__(self, token: str | None = "xoxb-test"):
        self.token = token

    def get_access_token(self, team_id: str) -> str | None:
        return self.token


class FakeInteractions:
    def __init__(self):
        self.records: list[dict[str, Any]] = []

    def record(self, **kw) -> None:
        self.records.append(kw)


class FakeProvider:
    """
    Scripted AI backend. ``replies`` is consumed in order; an Exception
    instance is raised instead of returned. The last reply repeats.
    """

    def __init__(self, name: str, replies: list[Any] | None = None, *, configured: bool = True):
        self.name = name
        self.replies = list(replies if replies is not None else [f"{name}-answer"])
        self._configured = configured
        self.calls: list[dict[str, Any]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def respond(self, message, system_prompt, history):
        self.calls.append({"message": message, "system_prompt": system_prompt, "history": list(history)})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def interactions() -> FakeInteractions:
    return FakeInteractions()


@pytest.fixture
def make_runtime(fake_table, gateway, interactions):
    from skybot.services.bot_runtime import BotRuntime
    from skybot.settings import Settings

    def _make(providers=None, *, token: str | None = "xoxb-test", **overrides):
        s = Settings().model_copy(update={"bot_timezone": "UTC", **overrides})
        return BotRuntime(
            s,
            providers=providers if providers is not None else [FakeProvider("p1", ["pong"])],
            gateway=gateway,
            tokens=FakeTokens(token),
            interactions=interactions,
        )

    return _make
