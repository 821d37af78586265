"""Shared builders for transcript messages and parts."""

from turn_sync.core.messages import MessageEntry


def user(mid, text="hello", *, created=1_000, diffs=None, session="ses_1", **info):
    """User message with one text part.

    Args:
        mid: Message id (becomes the turn id)
        text: Prompt text
        created: info.time.created
        diffs: Optional list for info.summary.diffs
    """
    data = {"id": mid, "role": "user", "sessionID": session, "time": {"created": created}}
    if diffs is not None:
        data["summary"] = {"diffs": diffs}
    data.update(info)
    return MessageEntry(info=data, parts=(text_part(text, pid=f"{mid}-text"),))


def assistant(
    mid,
    *parts,
    finish=None,
    completed=None,
    created=1_001,
    client_role=None,
    settled=False,
    session="ses_1",
):
    time = {"created": created}
    if completed is not None:
        time["completed"] = completed
    data = {"id": mid, "role": "assistant", "sessionID": session, "time": time}
    if finish is not None:
        data["finish"] = finish
    if client_role is not None:
        data["clientRole"] = client_role
    if settled:
        data["animationSettled"] = True
    return MessageEntry(info=data, parts=tuple(parts))


def text_part(text, *, pid=None, end=None):
    part = {"type": "text", "text": text}
    if pid is not None:
        part["id"] = pid
    if end is not None:
        part["time"] = {"end": end}
    return part


def reasoning_part(text="thinking", *, pid=None, end=None):
    part = {"type": "reasoning", "text": text}
    if pid is not None:
        part["id"] = pid
    if end is not None:
        part["time"] = {"end": end}
    return part


def tool_part(name="bash", *, pid=None, end=None):
    state = {"status": "completed" if end is not None else "running"}
    if end is not None:
        state["time"] = {"start": end - 1, "end": end}
    part = {"type": "tool", "tool": name, "state": state}
    if pid is not None:
        part["id"] = pid
    return part


def step_start(pid=None):
    part = {"type": "step-start"}
    if pid is not None:
        part["id"] = pid
    return part


def step_finish(reason="stop", pid=None):
    part = {"type": "step-finish", "reason": reason}
    if pid is not None:
        part["id"] = pid
    return part


def synthetic(part):
    return {**part, "synthetic": True}


def diff(additions, deletions, file="src/app.py"):
    return {"file": file, "additions": additions, "deletions": deletions}


def raw(entry):
    """Transport dict form of an entry, as found in transcript files."""
    return {"info": dict(entry.info), "parts": [dict(p) for p in entry.parts]}


def simple_conversation(turns=3, tools_per_turn=1):
    """N finished turns: user, one assistant with tools and a stop text."""
    messages = []
    for n in range(turns):
        messages.append(user(f"u{n}", f"question {n}", created=1_000 + n * 10))
        tools = [tool_part("bash", pid=f"a{n}-tool-{k}", end=1_002 + n * 10) for k in range(tools_per_turn)]
        messages.append(
            assistant(
                f"a{n}",
                *tools,
                text_part(f"answer {n}", pid=f"a{n}-text"),
                step_finish("stop"),
                finish="stop",
                completed=1_005 + n * 10,
            )
        )
    return messages
