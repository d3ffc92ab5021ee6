"""
Amazon Bedrock service module.
Implements the provider contract `chat(messages, config) -> str` used by the agent.
"""

import boto3
import json
import logging
from typing import List, Dict, Optional, Any
from botocore.exceptions import ClientError, NoCredentialsError
from dataclasses import dataclass
from config import aws_config, model_config, get_credentials_info


logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "bedrock-2023-05-31"


class BedrockError(Exception):
    """Custom exception for Bedrock service errors"""
    pass


@dataclass
class GenerationConfig:
    """Configuration for a single generation request"""
    max_tokens: int = 2000
    temperature: Optional[float] = 0.2
    top_p: Optional[float] = None
    stop_sequences: Optional[List[str]] = None


class BedrockService:
    """
    Service class for Amazon Bedrock interactions.
    Text in, text out: the agent parses structure out of the reply itself.
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        region: Optional[str] = None,
        client: Any = None,
    ):
        self.model_id = model_id or model_config.model_id
        self.region = region or aws_config.region

        self.client = client or self._create_client()
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

            logger.info(get_credentials_info())
            session = boto3.Session(**session_kwargs)
            return session.client("bedrock-runtime")

        except NoCredentialsError:
            raise BedrockError("AWS credentials not configured.")
        except Exception as e:
            raise BedrockError(f"Failed to initialize Bedrock client: {e}")

    def _format_request_body(self, messages: List[Dict[str, str]], config: GenerationConfig) -> Dict[str, Any]:
        """Anthropic messages body. System messages are lifted into `system`;
        consecutive messages with the same role are merged since the API
        requires alternating turns."""
        system_parts: List[str] = []
        formatted: List[Dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content") or ""
            if role == "system":
                system_parts.append(content)
                continue
            if formatted and formatted[-1]["role"] == role:
                formatted[-1]["content"] += "\n\n" + content
            else:
                formatted.append({"role": role, "content": content})

        if not formatted or formatted[0]["role"] != "user":
            formatted.insert(0, {"role": "user", "content": "(start)"})

        body: Dict[str, Any] = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": config.max_tokens,
            "messages": formatted,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if config.temperature is not None:
            body["temperature"] = config.temperature
        elif config.top_p is not None:
            body["top_p"] = config.top_p
        if config.stop_sequences:
            body["stop_sequences"] = config.stop_sequences
        return body

    def _parse_response(self, response_body: Dict) -> str:
        """Concatenate the text blocks of an Anthropic response body"""
        try:
            return "".join(
                block.get("text", "")
                for block in response_body.get("content", [])
                if block.get("type") == "text"
            )
        except (AttributeError, TypeError) as e:
            logger.error(f"Error parsing response: {e}")
            raise BedrockError(f"Failed to parse model response: {e}")

    def chat(self, messages: List[Dict[str, str]], config: Optional[GenerationConfig] = None) -> str:
        """Send a conversation and return the reply text."""
        gen_config = config or GenerationConfig(
            max_tokens=model_config.max_tokens, temperature=model_config.temperature,
        )
        request_body = self._format_request_body(messages, gen_config)

        try:
            logger.info(f"Invoking model: {self.model_id}")
            response = self.client.invoke_model(
                modelId=self.model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json",
            )
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_message = e.response.get("Error", {}).get("Message", str(e))
            logger.error(f"Bedrock API error: {error_code} - {error_message}")

            if error_code in ["ExpiredTokenException", "InvalidSignatureException"]:
                raise BedrockError("AWS credentials expired. Please refresh.")
            raise BedrockError(f"Bedrock API error: {error_message}")

        return self._parse_response(response_body)
