"""
Amazon Bedrock service module.
Handles all interactions with the AWS Bedrock runtime: whole-response and streaming
chat completions, with retry and exponential backoff for transient API errors.
"""

import boto3
import json
import logging
import time
from typing import Generator, List, Dict, Optional, Any
from botocore.exceptions import ClientError, NoCredentialsError
from dataclasses import dataclass
from config import (
    aws_config,
    model_config,
    app_config,
    get_model_config,
    get_max_output_tokens,
    requires_inference_profile,
)


logger = logging.getLogger(__name__)

# Error codes worth another attempt: rate limiting and server-side hiccups
_RETRYABLE_CODES = {
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelNotReadyException",
    "ModelStreamErrorException",
}


class BedrockError(Exception):
    """Custom exception for Bedrock service errors"""
    pass


@dataclass
class GenerationConfig:
    """Configuration for a single generation request"""
    max_tokens: int = model_config.max_tokens
    temperature: Optional[float] = model_config.temperature
    top_p: Optional[float] = model_config.top_p
    top_k: Optional[int] = None
    stop_sequences: Optional[List[str]] = None

    # Throughput settings
    throughput_mode: str = model_config.throughput_mode


@dataclass
class GenerationResult:
    """Result from a generation request"""
    content: str = ""
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


def _is_retryable(error: ClientError) -> bool:
    """Rate-limit (429) and server (5xx) failures are transient."""
    code = error.response.get("Error", {}).get("Code", "")
    if code in _RETRYABLE_CODES:
        return True
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
    return status == 429 or status >= 500


class BedrockService:
    """
    Service class for Amazon Bedrock interactions.
    The model identifier can be chosen per call, which is how personas
    route to different backing models.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        self.model_id = model_id or model_config.model_id
        self.region = region or aws_config.region
        self.max_retries = app_config.stream_max_retries if max_retries is None else max_retries
        self.retry_backoff = app_config.stream_retry_backoff if retry_backoff is None else retry_backoff

        self.client = self._create_client()
        logger.info(f"BedrockService initialized with model: {self.model_id}")

    def _create_client(self) -> Any:
        """Create and configure the Bedrock runtime client"""
        try:
            session_kwargs = {"region_name": self.region}

            if aws_config.has_profile():
                session_kwargs["profile_name"] = aws_config.profile_name
            elif aws_config.has_explicit_credentials():
                session_kwargs["aws_access_key_id"] = aws_config.access_key_id
                session_kwargs["aws_secret_access_key"] = aws_config.secret_access_key
                if aws_config.has_session_token():
                    session_kwargs["aws_session_token"] = aws_config.session_token

            session = boto3.Session(**session_kwargs)
            return session.client("bedrock-runtime")

        except NoCredentialsError:
            raise BedrockError("AWS credentials not configured.")
        except Exception as e:
            raise BedrockError(f"Failed to initialize Bedrock client: {e}")

    def _get_model_identifier(self, model_id: str, config: GenerationConfig) -> str:
        """Get the appropriate model identifier based on throughput mode"""
        if config.throughput_mode == "cross-region":
            if model_id.startswith(("us.", "eu.", "ap.")):
                return model_id
            elif requires_inference_profile(model_id):
                region_prefix = "us" if self.region.startswith("us-") else "eu" if self.region.startswith("eu-") else "us"
                return f"{region_prefix}.{model_id}"

        model_config_data = get_model_config(model_id)
        return model_config_data.get("base_id", model_id)

    def _format_request_body(
        self,
        messages: List[Dict],
        system_prompt: Optional[str],
        model_id: str,
        config: GenerationConfig,
    ) -> Dict[str, Any]:
        """Format the Anthropic messages request body"""
        formatted_messages = []
        for msg in messages:
            if msg["role"] == "system":
                # Bedrock takes the system prompt out-of-band
                system_prompt = "\n\n".join(p for p in (system_prompt, msg.get("content")) if p)
                continue
            content = msg.get("content") or "(no content)"
            formatted_messages.append({"role": msg["role"], "content": content})

        body: Dict[str, Any] = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": min(config.max_tokens, get_max_output_tokens(model_id)),
            "messages": formatted_messages,
        }
        if config.temperature is not None:
            body["temperature"] = config.temperature
        elif config.top_p is not None:
            body["top_p"] = config.top_p
        if config.top_k is not None:
            body["top_k"] = config.top_k
        if config.stop_sequences:
            body["stop_sequences"] = config.stop_sequences
        if system_prompt:
            body["system"] = system_prompt

        logger.debug(f"Request body keys: {list(body.keys())}")
        return body

    def _parse_response(self, response_body: Dict) -> GenerationResult:
        """Parse the Anthropic response body, keeping only text blocks"""
        result = GenerationResult()
        try:
            for block in response_body.get("content", []):
                if block.get("type") == "text":
                    result.content += block.get("text", "")
            usage = response_body.get("usage", {})
            result.input_tokens = usage.get("input_tokens", 0)
            result.output_tokens = usage.get("output_tokens", 0)
            result.stop_reason = response_body.get("stop_reason")
        except (KeyError, IndexError, AttributeError) as e:
            logger.error(f"Error parsing response: {e}")
            raise BedrockError(f"Failed to parse model response: {e}")
        return result

    def _backoff(self, attempt: int) -> None:
        delay = self.retry_backoff * (2 ** (attempt - 1))
        logger.warning(f"Transient Bedrock error, retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries + 1})")
        time.sleep(delay)

    @staticmethod
    def _client_error_message(e: ClientError) -> str:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        error_message = e.response.get("Error", {}).get("Message", str(e))
        if error_code in ("ExpiredTokenException", "InvalidSignatureException"):
            return "AWS credentials expired. Please refresh."
        return f"Bedrock API error: {error_code} - {error_message}"

    def generate_response(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> GenerationResult:
        """
        Generate a whole response using Amazon Bedrock.
        Transient failures are retried with exponential backoff.
        """
        current_model = model_id or self.model_id
        gen_config = config or GenerationConfig()
        model_identifier = self._get_model_identifier(current_model, gen_config)
        request_body = self._format_request_body(messages, system_prompt, current_model, gen_config)

        attempt = 0
        while True:
            try:
                logger.info(f"Invoking model: {model_identifier}")
                response = self.client.invoke_model(
                    modelId=model_identifier,
                    body=json.dumps(request_body),
                    contentType="application/json",
                    accept="application/json"
                )
                response_body = json.loads(response["body"].read())
                return self._parse_response(response_body)
            except ClientError as e:
                if _is_retryable(e) and attempt < self.max_retries:
                    attempt += 1
                    self._backoff(attempt)
                    continue
                message = self._client_error_message(e)
                logger.error(message)
                raise BedrockError(message)

    def generate_response_stream(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
        model_id: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
    ) -> Generator[Dict[str, Any], None, None]:
        """
        Generate a streaming response using Amazon Bedrock.
        Yields dictionaries with 'type' and 'content'.
        Types: text_start, text, text_end, message_end

        A transient failure is retried only while nothing has been yielded yet;
        once text has reached the caller a retry would duplicate it.
        """
        current_model = model_id or self.model_id
        gen_config = config or GenerationConfig()
        model_identifier = self._get_model_identifier(current_model, gen_config)
        request_body = self._format_request_body(messages, system_prompt, current_model, gen_config)

        attempt = 0
        yielded = False
        while True:
            try:
                logger.info(f"Streaming from model: {model_identifier}")
                response = self.client.invoke_model_with_response_stream(
                    modelId=model_identifier,
                    body=json.dumps(request_body),
                    contentType="application/json",
                    accept="application/json"
                )

                for event in response["body"]:
                    chunk = json.loads(event["chunk"]["bytes"])
                    event_type = chunk.get("type", "")

                    if event_type == "content_block_start":
                        if chunk.get("content_block", {}).get("type", "text") == "text":
                            yield {"type": "text_start", "content": ""}
                    elif event_type == "content_block_delta":
                        delta = chunk.get("delta", {})
                        if delta.get("type") == "text_delta":
                            text = delta.get("text", "")
                            if text:
                                yielded = True
                                yield {"type": "text", "content": text}
                    elif event_type == "content_block_stop":
                        yield {"type": "text_end", "content": ""}
                    elif event_type == "message_delta":
                        yield {
                            "type": "message_end",
                            "content": "",
                            "usage": chunk.get("usage", {}),
                            "stop_reason": chunk.get("delta", {}).get("stop_reason"),
                        }
                return

            except ClientError as e:
                if not yielded and _is_retryable(e) and attempt < self.max_retries:
                    attempt += 1
                    self._backoff(attempt)
                    continue
                message = self._client_error_message(e)
                logger.error(f"Bedrock streaming error: {message}")
                raise BedrockError(f"Streaming error: {message}")
            except (KeyError, ValueError) as e:
                raise BedrockError(f"Malformed stream event: {e}")

    def test_connection(self) -> tuple:
        """Test the Bedrock connection"""
        try:
            test_config = GenerationConfig(max_tokens=10, temperature=1.0)
            self.generate_response([{"role": "user", "content": "Hi"}], config=test_config)
            return True, "Connection successful"
        except Exception as e:
            return False, str(e)
