"""Base class for AI-backed analysis stages."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar

from compliance_worker.logging.logger import Log
from compliance_worker.stages.client_base import BaseStageClient
from compliance_worker.stages.exceptions import StageError, StageOutputError
from compliance_worker.stages.prompt_loader import load_json_schema, load_prompt_template

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class StageExecutor(ABC, Generic[InputT, OutputT]):
    """Runs one AI transformation: prompt -> provider call -> validated output.

    Subclasses name their prompt and schema files and map typed input to
    prompt variables and parsed JSON to typed output. Failures surface as
    StageError subclasses tagged with the stage name; there are no retries.
    """

    name: ClassVar[str]
    prompt_name: ClassVar[str]
    schema_name: ClassVar[str]

    def __init__(
        self,
        *,
        client: BaseStageClient,
        model: str,
        temperature: float = 0.0,
        max_error_length: int = 1000,
        system_prompt: str = "",
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(1.0, temperature))
        self._max_error_length = max_error_length
        self._system_prompt = system_prompt
        self._prompt_template = load_prompt_template(self.prompt_name, prompt_template_path)
        self._json_schema = load_json_schema(self.schema_name, json_schema_path)
        self._json_schema_dict = json.loads(self._json_schema)

    def execute(self, stage_input: InputT) -> OutputT:
        """Run the stage for ``stage_input``.

        Raises:
            StageNetworkError: if the provider call fails.
            StageOutputError: if the response lacks the required fields.
        """
        prompt = self._prompt_template.format(
            json_schema=self._json_schema,
            **self._prompt_variables(stage_input),
        )
        Log.debug(f"Stage {self.name} prompt ({len(prompt)} chars)")
        try:
            raw_response = self._client.create_chat_completion(
                model=self._model,
                temperature=self._temperature,
                system_prompt=self._system_prompt,
                user_prompt=prompt,
                schema_name=self.schema_name,
                json_schema=self._json_schema_dict,
            )
            Log.debug(f"Stage {self.name} raw response:\n{raw_response}")
            output = self._build_output(self._parse_json(raw_response))
        except StageError as exc:
            raise exc.for_stage(self.name, self._max_error_length) from exc
        return output

    @abstractmethod
    def _prompt_variables(self, stage_input: InputT) -> dict[str, str]:
        """Map stage input to the template's placeholders."""

    @abstractmethod
    def _build_output(self, data: dict[str, Any]) -> OutputT:
        """Validate parsed JSON and build the typed stage output."""

    @staticmethod
    def _parse_json(raw: str) -> dict[str, Any]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise StageOutputError(f"AI produced no usable output: invalid JSON ({exc})") from exc

        if not isinstance(parsed, dict):
            raise StageOutputError("AI produced no usable output: JSON response must be an object")
        return parsed
