"""build-info の出力フォーマット（table / json / csv / list / suggest）。

どれも文字列を返すだけ。表示は CLI 側。
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Mapping

from branch_tools.build_number import NeighborPair, Suggestion, branches_for

NA = "N/A"


def _neighbor_branch(value: int | None, numbers: Mapping[str, int]) -> str | None:
    if value is None:
        return None
    found = branches_for(value, numbers)
    return found[0] if found else None


def render_table(numbers: Mapping[str, int], neighbors: Mapping[int, NeighborPair]) -> str:
    if not numbers:
        return "No build.txt files found in any branch."

    width = max([len("Branch"), *(len(b) for b in numbers)])
    sep = "+" + "-" * (width + 2) + "+" + "-" * 12 + "+" + "-" * 25 + "+" + "-" * 25 + "+"
    lines = [
        sep,
        f"| {'Branch':<{width}} | {'Build':<10} | {'Left Neighbor':<23} | {'Right Neighbor':<23} |",
        sep,
    ]
    for branch, value in numbers.items():
        n = neighbors.get(value)
        left = right = NA
        if n is not None and n.left is not None:
            left = f"{n.left} (-{n.left_gap})"
        if n is not None and n.right is not None:
            right = f"{n.right} (+{n.right_gap})"
        lines.append(f"| {branch:<{width}} | {value:<10} | {left:<23} | {right:<23} |")
    lines.append(sep)
    return "\n".join(lines)


def _neighbor_json(value: int | None, gap: int | None, numbers: Mapping[str, int]) -> dict | None:
    if value is None:
        return None
    return {
        "build_number": value,
        "branch": _neighbor_branch(value, numbers),
        "gap": gap,
    }


def render_json(numbers: Mapping[str, int], neighbors: Mapping[int, NeighborPair]) -> str:
    items = []
    for branch, value in numbers.items():
        n = neighbors.get(value, NeighborPair(value=value))
        items.append(
            {
                "branch": branch,
                "build_number": value,
                "left_neighbor": _neighbor_json(n.left, n.left_gap, numbers),
                "right_neighbor": _neighbor_json(n.right, n.right_gap, numbers),
            }
        )
    return json.dumps(items, indent=4, ensure_ascii=False)


def render_csv(numbers: Mapping[str, int], neighbors: Mapping[int, NeighborPair]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(
        ["Branch", "Build Number", "Left Neighbor", "Left Gap", "Right Neighbor", "Right Gap"]
    )
    for branch, value in numbers.items():
        n = neighbors.get(value, NeighborPair(value=value))
        writer.writerow(
            [
                branch,
                value,
                NA if n.left is None else n.left,
                NA if n.left_gap is None else n.left_gap,
                NA if n.right is None else n.right,
                NA if n.right_gap is None else n.right_gap,
            ]
        )
    return buf.getvalue().rstrip("\n")


def render_list(numbers: Mapping[str, int], neighbors: Mapping[int, NeighborPair]) -> str:
    lines: list[str] = []
    for branch, value in numbers.items():
        n = neighbors.get(value, NeighborPair(value=value))
        lines.append(f"Branch: {branch}")
        lines.append("-" * 70)
        lines.append(f"Build Number: {value}")
        if n.left is not None:
            lines.append(
                f"Left Neighbor: {n.left} (branch: {_neighbor_branch(n.left, numbers)}, gap: {n.left_gap})"
            )
        else:
            lines.append(f"Left Neighbor: {NA}")
        if n.right is not None:
            lines.append(
                f"Right Neighbor: {n.right} (branch: {_neighbor_branch(n.right, numbers)}, gap: {n.right_gap})"
            )
        else:
            lines.append(f"Right Neighbor: {NA}")
        lines.append("")
    return "\n".join(lines)


def render_suggestions(
    suggestions: list[Suggestion],
    *,
    min_gap: int,
    current_branch: str | None = None,
    current_build: int | None = None,
    top: int = 5,
) -> str:
    lines = ["=== Available Build Number Suggestions ===", ""]

    if current_build is not None:
        lines += [
            f"Current branch: {current_branch}",
            f"Current build number: {current_build}",
            "",
            f"📍 RECOMMENDED: {current_build + 1} (current branch increment)",
            "",
        ]

    lines += [f"Looking for gaps of at least {min_gap} between existing build numbers...", ""]

    if not suggestions:
        lines.append(f"No available build numbers found with required gap of {min_gap}.")
        return "\n".join(lines)

    sep = "+------------+--------------+--------------+---------+"
    lines += [
        f"Found {len(suggestions)} available build numbers:",
        "",
        sep,
        "| Suggested  | After        | Before       | Gap     |",
        sep,
    ]
    for s in suggestions:
        before = "END" if s.before is None else str(s.before)
        gap = "-" if s.gap is None else str(s.gap)
        lines.append(f"| {s.number:<10} | {s.after:<12} | {before:<12} | {gap:<7} |")
    lines += [sep, "", f"Top {top} Recommendations (lowest numbers):"]

    if current_build is not None:
        lines += [
            f"  💡 BEST: {current_build + 1} (increment from current branch '{current_branch}' "
            f"with build {current_build})",
            "",
            "Alternative options:",
        ]

    for i, s in enumerate(suggestions[:top], start=1):
        if s.before is None:
            lines.append(f"  {i}. {s.number} (from {s.after_branch} {s.after} to END)")
        else:
            lines.append(
                f"  {i}. {s.number} (gap of {s.gap} from {s.after_branch} {s.after} "
                f"to {s.before_branch} {s.before})"
            )
    return "\n".join(lines)
