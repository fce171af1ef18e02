from __future__ import annotations

from rabbit.sim.rabbit import RabbitState

RABBIT_ART: dict[RabbitState, tuple[str, ...]] = {
    RabbitState.WANDERING: (
        " ()_()",
        " (-.-)",
        "'(\"|\")'",
    ),
    RabbitState.SPOTTED: (
        "(_/  _#",
        "'.'_( )",
    ),
    RabbitState.FLEEING: (
        "  o __(\\\\",
        "   ) _ --",
        " //    \\\\",
    ),
    RabbitState.CAUGHT: (
        "_________",
        "| ()|() |",
        "+---+---+",
        "|(\")|(\")|",
        "---------",
    ),
    RabbitState.DEAD: (
        "(\\ /)",
        "(x.x)",
        "(> <)",
    ),
}


def render_rabbit(state: RabbitState) -> str:
    return "\n".join(RABBIT_ART[state])


def spotted_flavor(count: int) -> str:
    if count < 20:
        return ""
    if count < 50:
        return ":)"
    return ":D"


def caught_flavor(count: int) -> str:
    if count < 5:
        return ""
    if count < 20:
        return ":)"
    return ":D"


def killed_flavor(count: int) -> str:
    """The more rabbits killed, the more dramatic."""
    if count < 5:
        return ""
    if count < 20:
        return ":("
    if count < 50:
        return ";("
    return "MONSTER!!"


def render_stats(spotted: int, caught: int, killed: int) -> str:
    rows = [
        ("spotted", spotted, spotted_flavor(spotted)),
        ("caught", caught, caught_flavor(caught)),
        ("killed", killed, killed_flavor(killed)),
    ]
    lines = ["Rabbits"]
    for label, count, flavor in rows:
        lines.append(f"...{label + ':':<12}{count} {flavor}".rstrip())
    return "\n".join(lines)
