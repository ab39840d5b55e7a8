"""LLM request/response logging for prompt agents."""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

class LLMLogger:
    """Logger for LLM requests and responses.

    Appends every interaction as a JSON line to one file per day, tagged
    with the prompt version it was compiled from.

    Attributes:
        log_dir: Directory where log files are stored.
        logger: Standard Python logger for console output.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_to_console: bool = True,
        console_level: int = logging.INFO
    ):
        """Initialize the LLM logger.

        Args:
            log_dir: Directory for storing log files.
            log_to_console: Whether to also log to console.
            console_level: Logging level for console output.
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("observ.llm")
        self.logger.setLevel(logging.DEBUG)

        if log_to_console and not self.logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(console_level)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    def _get_log_file_path(self, date: Optional[datetime] = None) -> Path:
        """Get the path of the log file for a day (today by default)."""
        day = (date or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
        return self.log_dir / f"llm_log_{day}.jsonl"

    def _write_log_entry(self, entry: Dict[str, Any]) -> None:
        with open(self._get_log_file_path(), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def generate_request_id(self) -> str:
        """Generate a unique request ID for tracking."""
        return str(uuid.uuid4())

    def log_request(
        self,
        request_id: str,
        model: str,
        messages: List[Dict[str, Any]],
        parameters: Optional[Dict[str, Any]] = None,
        prompt_name: Optional[str] = None,
        prompt_version: Optional[int] = None
    ) -> None:
        """Log the input to the LLM.

        Args:
            request_id: Unique identifier for this request.
            model: Name of the model being called.
            messages: Chat messages sent to the model.
            parameters: Sampling parameters taken from the prompt config.
            prompt_name: Name of the prompt the messages were compiled from.
            prompt_version: Version of that prompt, None for fallback text.
        """
        prompt_length = sum(len(str(m.get("content", ""))) for m in messages)
        entry = {
            "type": "request",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "model": model,
            "messages": messages,
            "prompt_length": prompt_length,
            "parameters": parameters or {},
            "prompt_name": prompt_name,
            "prompt_version": prompt_version,
        }

        self._write_log_entry(entry)
        self.logger.info(
            f"LLM Request [{request_id[:8]}]: model={model}, "
            f"prompt={prompt_name} v{prompt_version}, prompt_length={prompt_length}"
        )

    def log_response(
        self,
        request_id: str,
        response: str,
        tokens_used: Optional[int] = None,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        latency_ms: Optional[float] = None,
        model: Optional[str] = None
    ) -> None:
        """Log the output from the LLM.

        Args:
            request_id: Unique identifier matching the request.
            response: The response text.
            tokens_used: Total tokens used (if available).
            prompt_tokens: Tokens used for the prompt.
            completion_tokens: Tokens used for the completion.
            latency_ms: Time taken for the request in milliseconds.
            model: Model that answered.
        """
        response = response or ""
        entry = {
            "type": "response",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "response": response,
            "response_length": len(response),
            "tokens_used": tokens_used,
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "latency_ms": latency_ms,
            "model": model,
        }

        self._write_log_entry(entry)
        self.logger.info(
            f"LLM Response [{request_id[:8]}]: "
            f"response_length={len(response)}, "
            f"tokens={tokens_used}, latency_ms={latency_ms}"
        )

    def log_error(
        self,
        request_id: str,
        error: Exception,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log an error raised during an LLM call.

        Args:
            request_id: Unique identifier matching the request.
            error: The exception that occurred.
            context: Additional context about the error.
        """
        entry = {
            "type": "error",
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {},
        }

        self._write_log_entry(entry)
        self.logger.error(
            f"LLM Error [{request_id[:8]}]: {type(error).__name__}: {error}"
        )

    def get_logs_for_date(self, date: datetime) -> List[Dict[str, Any]]:
        """Retrieve all log entries for a specific date."""
        log_path = self._get_log_file_path(date)
        if not log_path.exists():
            return []

        entries = []
        with open(log_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    entries.append(json.loads(line))
        return entries

    def get_request_chain(self, request_id: str, date: datetime) -> List[Dict[str, Any]]:
        """Get all log entries for one request ID on a given date."""
        return [
            entry for entry in self.get_logs_for_date(date)
            if entry.get("request_id") == request_id
        ]

    def prompt_usage(self, date: datetime) -> Dict[str, Dict[str, int]]:
        """Summarize a day's traffic per prompt version.

        Responses and errors are attributed to the prompt of the request
        with the same ID. Fallback text is reported as ``{name} fallback``.

        Returns:
            Mapping like ``{"qa v2": {"requests": 3, "errors": 1, "tokens": 410}}``.
        """
        prompts_by_request: Dict[str, str] = {}
        usage: Dict[str, Dict[str, int]] = {}

        for entry in self.get_logs_for_date(date):
            if entry.get("type") == "request":
                version = entry.get("prompt_version")
                label = f"{entry.get('prompt_name')} " + (f"v{version}" if version else "fallback")
                prompts_by_request[entry["request_id"]] = label
                usage.setdefault(label, {"requests": 0, "errors": 0, "tokens": 0})
                usage[label]["requests"] += 1
                continue

            label = prompts_by_request.get(entry.get("request_id"))
            if label is None:
                continue
            if entry.get("type") == "error":
                usage[label]["errors"] += 1
            elif entry.get("type") == "response":
                usage[label]["tokens"] += entry.get("tokens_used") or 0

        return usage
