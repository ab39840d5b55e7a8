"""Agent that answers dataset items with a managed prompt and the OpenAI API."""

import time
from typing import Any, Dict, List, Optional

from openai import OpenAI

from observ.config import OpenAIConfig
from observ.interfaces.agent import AgentResult, IAgent
from observ.llm_logging.llm_logger import LLMLogger
from observ.prompts.store import PromptVersionStore
from observ.prompts.template import extract_placeholders, variables_from_input

# prompt config key -> chat completions parameter
CONFIG_PARAMETERS = {
    "temperature": "temperature",
    "max_tokens": "max_tokens",
    "top_p": "top_p",
    "frequency_penalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
    "stop_sequences": "stop",
    "seed": "seed",
    "response_format": "response_format",
}


class OpenAIPromptAgent(IAgent):
    """Runs a stored prompt against the OpenAI chat completions API.

    The prompt is fetched from the store on every call, so promoting a new
    version takes effect on the next item. Templates with placeholders are
    compiled with the item input and sent as one user message; templates
    without placeholders are sent as the system message, followed by the
    input as the user message.

    Attributes:
        store: Prompt store the prompt is fetched from.
        prompt_name: Name of the prompt to use.
        prompt_version: Pinned version, or None for the production version.
        fallback: Text used when the prompt does not exist.
        client: OpenAI client instance.
        logger: LLM logger for tracking requests/responses.
    """

    def __init__(
        self,
        store: PromptVersionStore,
        prompt_name: str,
        config: Optional[OpenAIConfig] = None,
        prompt_version: Optional[int] = None,
        fallback: Optional[str] = None,
        logger: Optional[LLMLogger] = None,
        client: Optional[OpenAI] = None
    ):
        """Initialize the agent.

        Args:
            store: Prompt store the prompt is fetched from.
            prompt_name: Name of the prompt to use.
            config: OpenAI configuration. Defaults to OpenAIConfig.from_env().
            prompt_version: Pin a version instead of using production.
            fallback: Text used when the prompt does not exist.
            logger: Optional LLM logger instance.
            client: Optional preconfigured OpenAI client.
        """
        self.store = store
        self.prompt_name = prompt_name
        self.prompt_version = prompt_version
        self.fallback = fallback
        self.config = config or OpenAIConfig.from_env()
        self.logger = logger or LLMLogger()
        self.client = client or OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url or None,
        )

    def get_model_name(self) -> str:
        return self.config.default_model

    def run(self, input: Any) -> AgentResult:
        """Answer one dataset item input."""
        prompt = self.store.fetch(
            self.prompt_name,
            version=self.prompt_version,
            fallback=self.fallback,
        )
        messages = self.build_messages(prompt.text, input)
        parameters = self.build_parameters(prompt.config)
        model = parameters.pop("model")

        request_id = self.logger.generate_request_id()
        self.logger.log_request(
            request_id=request_id,
            model=model,
            messages=messages,
            parameters=parameters,
            prompt_name=self.prompt_name,
            prompt_version=prompt.version,
        )

        start_time = time.time()

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                **parameters,
            )
        except Exception as e:
            self.logger.log_error(request_id, e, {"prompt_name": self.prompt_name, "model": model})
            raise

        latency_ms = (time.time() - start_time) * 1000
        response_text = response.choices[0].message.content or ""
        usage = response.usage
        total_tokens = usage.total_tokens if usage else 0

        self.logger.log_response(
            request_id=request_id,
            response=response_text,
            tokens_used=total_tokens,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            latency_ms=latency_ms,
            model=response.model or model,
        )

        return AgentResult(
            output=response_text,
            total_tokens=total_tokens or 0,
            total_cost=round((total_tokens or 0) / 1000 * self.config.cost_per_1k_tokens, 6),
            model=response.model or model,
            metadata={
                "request_id": request_id,
                "prompt_name": self.prompt_name,
                "prompt_version": prompt.version,
                "latency_ms": round(latency_ms, 2),
            },
        )

    def build_messages(self, text: str, input: Any) -> List[Dict[str, str]]:
        """Turn prompt text and an item input into chat messages."""
        variables = variables_from_input(input)
        if extract_placeholders(text):
            return [{"role": "user", "content": self.store.compile(text, variables)}]
        return [
            {"role": "system", "content": text},
            {"role": "user", "content": str(variables["input"])},
        ]

    def build_parameters(self, prompt_config: Dict[str, Any]) -> Dict[str, Any]:
        """Build chat completion parameters from a prompt config and the defaults."""
        parameters: Dict[str, Any] = {
            "model": prompt_config.get("model") or self.config.default_model,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        for key, parameter in CONFIG_PARAMETERS.items():
            if prompt_config.get(key) is not None:
                parameters[parameter] = prompt_config[key]
        return parameters
