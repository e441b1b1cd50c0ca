"""Block compilation: pair every if/while start with its end.

A single left-to-right scan keeps a stack of open blocks. The result is a
two-way jump table the interpreter uses to skip an ``if`` body or to loop
back to a ``while`` head. Any unmatched or mismatched bracket rejects the
whole operation list.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

from core.exceptions import WorkflowValidationError
from workflow.normalize import normalize_steps
from workflow.operations import BLOCK_ENDS, BLOCK_STARTS, OperationModel


@dataclass(frozen=True)
class BlockMap:
    """Start index -> end index and the reverse, for every block."""

    start_to_end: dict[int, int] = field(default_factory=dict)
    end_to_start: dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CompiledWorkflow:
    operations: list[OperationModel]
    blocks: BlockMap

    def __len__(self) -> int:
        return len(self.operations)


def compile_blocks(operations: list[OperationModel]) -> BlockMap:
    """Build the jump table for ``operations``.

    Raises:
        WorkflowValidationError: on an end without a start, an end closing a
            block of the other kind, or a start that is never closed
    """
    start_to_end: dict[int, int] = {}
    end_to_start: dict[int, int] = {}
    stack: list[tuple[str, int]] = []

    for index, op in enumerate(operations):
        if op.action in BLOCK_STARTS:
            stack.append((BLOCK_STARTS[op.action], index))
            continue

        kind = BLOCK_ENDS.get(op.action)
        if kind is None:
            continue

        if not stack:
            raise WorkflowValidationError(
                f"Invalid workflow: {kind}.end must have an earlier matching {kind}.start",
                [f"steps[{index}]: {kind}.end has no matching {kind}.start"],
            )
        open_kind, start = stack.pop()
        if open_kind != kind:
            raise WorkflowValidationError(
                f"Invalid workflow: {kind}.end must have an earlier matching {kind}.start",
                [
                    f"steps[{index}]: {kind}.end closes a {open_kind}.start (at index {start}); "
                    "blocks must be properly nested"
                ],
            )
        start_to_end[start] = index
        end_to_start[index] = start

    if stack:
        kind, start = stack[-1]
        raise WorkflowValidationError(
            f"Invalid workflow: {kind}.start must have a later matching {kind}.end",
            [f"steps[{s}]: {k}.start has no matching {k}.end" for k, s in stack],
        )

    return BlockMap(start_to_end=start_to_end, end_to_start=end_to_start)


def compile_steps(steps: Iterable[Any]) -> CompiledWorkflow:
    """Normalize raw steps and validate their block structure."""
    operations = normalize_steps(steps)
    return CompiledWorkflow(operations=operations, blocks=compile_blocks(operations))
