import httpx
import openai

from compliance_worker.stages.client_base import BaseStageClient
from compliance_worker.stages.exceptions import StageNetworkError, StageOutputError


class OpenAIClientAdapter(BaseStageClient):
    """Stage client adapter built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        schema_name: str,
        json_schema: dict[str, object],
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "schema": json_schema,
                    },
                },
                messages=messages,
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise StageNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIStatusError as exc:
            raise StageNetworkError(
                f"AI provider API error: {exc.message} (status {exc.status_code})"
            ) from exc
        except openai.APIError as exc:
            raise StageNetworkError(f"AI provider API error: {exc}") from exc

        if not response.choices:
            raise StageOutputError("AI produced no usable output: no choices returned")
        content = response.choices[0].message.content
        if not content:
            raise StageOutputError("AI produced no usable output: empty response")
        return content
