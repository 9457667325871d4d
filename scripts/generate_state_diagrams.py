"""
Generate Mermaid diagrams from the lifecycle transition tables.

Usage:
    python scripts/generate_state_diagrams.py                  # print to stdout
    python scripts/generate_state_diagrams.py --update-readme  # update README.md
    python scripts/generate_state_diagrams.py --check          # verify README.md is in sync (CI)
"""
import argparse
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Optional

# Add root to path so the app package imports without installation
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.db.models.departure import DepartureStatus
from app.db.models.shipment import ShipmentStatus
from app.state_machine.states import DEPARTURE_TRANSITIONS, SHIPMENT_TRANSITIONS

DEPARTURE_LABELS: dict[str, str] = {
    DepartureStatus.OPEN.value: "Open - shipments can be added or removed",
    DepartureStatus.SEALED.value: "Sealed - general waybill issued",
    DepartureStatus.CLOSED.value: "Closed - counted in distributions",
}

SHIPMENT_LABELS: dict[str, str] = {
    ShipmentStatus.PENDING.value: "Pending",
    ShipmentStatus.CONFIRMED.value: "Confirmed - pricing locked",
    ShipmentStatus.ASSIGNED.value: "Assigned to an open departure",
    ShipmentStatus.CANCELLED.value: "Cancelled",
}

README_PATH = Path(__file__).resolve().parent.parent / "README.md"
START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"


def _sanitize_id(state_value: str) -> str:
    """Mermaid ids cannot contain dots or dashes"""
    return state_value.replace(".", "_").replace("-", "_")


def generate_mermaid_from_transitions(
    transitions: dict[Any, list[Any]],
    labels: dict[str, str],
    initial: Optional[Enum] = None,
) -> str:
    """
    Build a stateDiagram-v2 from a transition table.

    Args:
        transitions: {state: [target_states]}
        labels: {state_value: "label"}
        initial: entry state; defaults to the first key of the table
    """
    lines: list[str] = ["stateDiagram-v2"]

    all_states: set[str] = set()
    for source, targets in transitions.items():
        all_states.add(source.value)
        for target in targets:
            all_states.add(target.value)

    for state_value in sorted(all_states):
        lines.append(f"    {_sanitize_id(state_value)} : {labels.get(state_value, state_value)}")

    lines.append("")

    entry = initial if initial is not None else next(iter(transitions))
    lines.append(f"    [*] --> {_sanitize_id(entry.value)}")

    lines.append("")

    for source, targets in transitions.items():
        source_id = _sanitize_id(source.value)
        for target in targets:
            lines.append(f"    {source_id} --> {_sanitize_id(target.value)}")
        if not targets:
            lines.append(f"    {source_id} --> [*]")

    return "\n".join(lines)


def generate_all_diagrams() -> dict[str, str]:
    """{title: mermaid source} for every lifecycle"""
    return {
        "Departure (DepartureStatus)": generate_mermaid_from_transitions(
            DEPARTURE_TRANSITIONS, DEPARTURE_LABELS, initial=DepartureStatus.OPEN,
        ),
        "Shipment (ShipmentStatus)": generate_mermaid_from_transitions(
            SHIPMENT_TRANSITIONS, SHIPMENT_LABELS, initial=ShipmentStatus.PENDING,
        ),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def _section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n### Lifecycle diagrams\n\n{markdown_content}\n{END_MARKER}"


def update_readme(markdown_content: str, path: Path = README_PATH) -> None:
    """Replace the marked block, or append it when the markers are missing"""
    content = path.read_text(encoding="utf-8") if path.exists() else ""
    new_section = _section(markdown_content)

    if START_MARKER in content:
        pattern = re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)
        content = pattern.sub(lambda _: new_section, content)
    else:
        content = (content.rstrip() + "\n\n" if content else "") + new_section + "\n"

    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_readme(markdown_content: str, path: Path = README_PATH) -> bool:
    """True when the marked block in README.md matches the transition tables"""
    if not path.exists():
        print(f"Error: {path} not found")
        return False

    content = path.read_text(encoding="utf-8")
    pattern = re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)
    match = pattern.search(content)
    if not match:
        print("Error: diagram markers not found in README.md")
        return False

    if match.group(0) == _section(markdown_content):
        print("Diagrams are in sync with the code")
        return True

    print("Error: diagrams in README.md are out of date")
    print("Run: python scripts/generate_state_diagrams.py --update-readme")
    return False


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate Mermaid diagrams of the lifecycles")
    parser.add_argument(
        "--update-readme",
        action="store_true",
        help="Write the diagrams into README.md",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Fail when README.md is out of sync (for CI)",
    )
    args = parser.parse_args()

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_readme(markdown) else 1)
    elif args.update_readme:
        update_readme(markdown)
    else:
        print(markdown)


if __name__ == "__main__":
    main()
