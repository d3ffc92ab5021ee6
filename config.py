"""
Configuration module for Coach Agent.
Handles environment variables, model defaults and agent runtime settings.
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class AWSConfig:
    """AWS-specific configuration"""
    region: str = os.getenv("AWS_REGION", "us-east-1")
    access_key_id: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = os.getenv("AWS_SESSION_TOKEN", "")
    profile_name: str = os.getenv("AWS_PROFILE", "")

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def has_session_token(self) -> bool:
        return bool(self.session_token)

    def has_profile(self) -> bool:
        return bool(self.profile_name)


@dataclass
class ModelConfig:
    """Model-specific configuration"""
    model_id: str = os.getenv("BEDROCK_MODEL_ID", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")
    max_tokens: int = int(os.getenv("MAX_TOKENS", "2000"))
    temperature: Optional[float] = float(os.getenv("TEMPERATURE", "")) if os.getenv("TEMPERATURE") else 0.2


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "Coach Agent"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "coach_agent.log")
    working_directory: str = os.getenv("WORKING_DIRECTORY", ".")
    # Thinking -> Dispatching cycles before the run is reverted
    max_turns: int = int(os.getenv("MAX_AGENT_TURNS", "20"))
    # Seconds before a spawned command's process group is killed
    command_timeout: int = int(os.getenv("COMMAND_TIMEOUT", "300"))
    # Characters of command output echoed back to the model
    command_output_limit: int = int(os.getenv("COMMAND_OUTPUT_LIMIT", "4000"))


# Create global config instances
aws_config = AWSConfig()
model_config = ModelConfig()
app_config = AppConfig()


def get_credentials_info() -> str:
    if aws_config.has_profile():
        return f"Using AWS profile: {aws_config.profile_name}"
    elif aws_config.has_explicit_credentials():
        if aws_config.has_session_token():
            return "Using temporary credentials (with session token)"
        return "Using explicit credentials"
    return "Using default credential chain"
