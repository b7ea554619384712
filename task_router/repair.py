"""One-shot repair of invalid structured output."""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from task_router.models import Completion, Expect, ProviderClient, SchemaName, ValidationOutcome
from task_router.validators import check_output


@dataclass(frozen=True)
class RepairOutcome:
    validation: ValidationOutcome
    completion: Completion | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.validation.ok


def needs_repair(expect: Expect, schema: SchemaName | str | None) -> bool:
    """Repair only applies where there is a structure to repair towards."""
    expect = Expect(expect)
    if expect is Expect.MERMAID:
        return True
    return expect is Expect.JSON and schema is not None


def build_repair_messages(
    messages: list[dict[str, Any]],
    raw_text: str,
    expect: Expect,
    schema: SchemaName | str | None,
    error: str | None,
) -> list[dict[str, Any]]:
    """Original history plus the invalid reply and one repair instruction."""
    schema_name = getattr(schema, "value", schema)
    if Expect(expect) is Expect.MERMAID:
        instruction = (
            "Fix this broken Mermaid diagram so it is valid and renderable:\n\n"
            f"{raw_text.strip()}\n\n"
            f"Error: {error or 'invalid syntax'}\n\n"
            "Return ONLY the corrected Mermaid code in a single fenced code block."
        )
    else:
        instruction = (
            f"The previous response was invalid ({error or 'unknown error'}). "
            f"Fix it to conform to schema `{schema_name}`. Return only valid JSON."
        )
    history = [msg.copy() for msg in messages]
    history.append({"role": "assistant", "content": raw_text})
    history.append({"role": "user", "content": instruction})
    return history


class RepairCoordinator:
    """Asks the same model once to correct its own invalid output."""

    def __init__(self, provider: ProviderClient):
        self._provider = provider

    async def repair(
        self,
        model: str,
        messages: list[dict[str, Any]],
        raw_text: str,
        expect: Expect,
        schema: SchemaName | str | None,
        error: str | None,
        timeout_ms: int | None = None,
    ) -> RepairOutcome:
        """Issue exactly one extra call and re-validate once. Never raises."""
        repair_messages = build_repair_messages(messages, raw_text, expect, schema, error)
        try:
            completion = await self._provider.complete(
                model, repair_messages, timeout_ms=timeout_ms,
            )
        except Exception as e:
            logger.warning(f"Repair call on {model} failed: {e}")
            return RepairOutcome(ValidationOutcome.failure(str(e)), error=str(e))

        validation = check_output(completion.text, expect, schema)
        if validation.ok:
            logger.info(f"Repair on {model} produced valid output")
        else:
            logger.warning(f"Repair on {model} still invalid: {validation.error}")
        return RepairOutcome(validation, completion=completion, error=validation.error)
