"""Profile activity discovery using Amazon Bedrock."""

import json
import re
import time

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from .config import BedrockConfig
from .errors import (
    DiscoveryResponseError,
    FetchError,
    RateLimitedError,
    UpstreamNotFoundError,
)
from .logging_config import create_execution_logger
from .models import Profile, RawItem

RATE_LIMIT_CODES = {
    "ThrottlingException",
    "ServiceQuotaExceededException",
    "TooManyRequestsException",
}
NOT_FOUND_CODES = {"ResourceNotFoundException", "ModelNotReadyException"}

_JSON_BLOCK_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

DEFAULT_PROMPT_TEMPLATE = """Analyze this social media profile: "{url}" ({platform})
Find the recent posts or news from this profile published ONLY within the last {hours} hours.

If a post is older than {hours} hours, DO NOT include it.
If no posts are found from the last {hours} hours, return an empty array [].

IMPORTANT: If the post has an image, you MUST extract its direct URL into "imageUrl".

Return ONLY a JSON array with this format:
[
    {{
      "title": "Post title / summary ({language})",
      "link": "Direct URL to post",
      "description": "Content summary ({language})",
      "pubDate": "ISO 8601 date",
      "imageUrl": "Direct image URL (or null)"
    }}
]
"""


def classify_client_error(error: ClientError) -> FetchError:
    """Map a botocore ClientError onto the fetch error taxonomy."""
    details = error.response.get("Error", {})
    code = details.get("Code", "")
    message = details.get("Message", "")
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    if code in RATE_LIMIT_CODES or status == 429:
        return RateLimitedError(f"{code or status}: {message}")
    if code in NOT_FOUND_CODES or status == 404:
        return UpstreamNotFoundError(f"{code or status}: {message}")
    if code == "ValidationException" and re.search(
        r"model identifier is invalid|not found|not supported", message, re.IGNORECASE
    ):
        return UpstreamNotFoundError(f"{code}: {message}")
    return FetchError(f"{code or status}: {message}")


def extract_json_array(text: str) -> list | None:
    """Extract the JSON array from a model answer.

    Returns None when the text contains no array at all.

    Raises:
        DiscoveryResponseError: If an array is present but not valid JSON
    """
    match = _JSON_BLOCK_RE.search(text) or _JSON_ARRAY_RE.search(text)
    if not match:
        return None

    payload = match.group(1) if match.groups() else match.group(0)
    try:
        data = json.loads(payload.strip())
    except json.JSONDecodeError as e:
        raise DiscoveryResponseError(f"Invalid JSON in model response: {e}") from e

    if not isinstance(data, list):
        return None
    return data


class ProfileDiscoverer:
    """Discovers recent posts of a profile by asking a Bedrock model."""

    def __init__(
        self,
        config: BedrockConfig,
        discovery_window_hours: int = 2,
        content_language: str = "Turkish",
        execution_id: str | None = None,
    ):
        """Initialize the discoverer with Bedrock configuration."""
        self.config = config
        self.discovery_window_hours = discovery_window_hours
        self.content_language = content_language
        self.logger = create_execution_logger("discovery", execution_id)
        self.bedrock_client = None
        self._initialize_bedrock_client()

    def _initialize_bedrock_client(self) -> None:
        """Initialize Bedrock client with error handling."""
        try:
            self.bedrock_client = boto3.client(
                "bedrock-runtime", region_name=self.config.region
            )
            self.logger.info("Initialized Bedrock client", region=self.config.region)
        except (NoCredentialsError, ClientError) as e:
            self.logger.warning(
                f"Failed to initialize Bedrock client: {e}", error=str(e)
            )
            self.bedrock_client = None

    def build_prompt(self, profile: Profile) -> str:
        """Render the discovery prompt for a profile."""
        return DEFAULT_PROMPT_TEMPLATE.format(
            url=profile.url,
            platform=profile.platform,
            hours=self.discovery_window_hours,
            language=self.content_language,
        )

    def fetch_items(self, profile: Profile, model_id: str) -> list[RawItem]:
        """Ask the model for the profile's recent posts.

        Args:
            profile: Profile to analyze
            model_id: Bedrock model to call

        Returns:
            Raw items found (possibly empty)

        Raises:
            RateLimitedError: If Bedrock throttled the request
            UpstreamNotFoundError: If the model is not available
            FetchError: For any other failure
        """
        if not self.bedrock_client:
            raise FetchError("Bedrock client not available")

        self.logger.info(
            f"Analyzing: {profile.name} ({profile.platform})",
            profile_url=profile.url,
            model_id=model_id,
        )

        request_body = {
            "messages": [
                {"role": "user", "content": [{"text": self.build_prompt(profile)}]}
            ],
            "inferenceConfig": {"maxTokens": self.config.max_tokens, "temperature": 0.2},
        }

        start_time = time.time()
        try:
            response = self.bedrock_client.invoke_model(
                modelId=model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            error = classify_client_error(e)
            self.logger.warning(
                f"Bedrock call failed: {error}",
                profile_url=profile.url,
                error_type=type(error).__name__,
            )
            raise error from e

        response_time_ms = int((time.time() - start_time) * 1000)
        try:
            response_body = json.loads(response["body"].read())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DiscoveryResponseError(f"Invalid JSON in Bedrock response body: {e}") from e
        text = self._response_text(response_body)

        data = extract_json_array(text)
        if data is None:
            self.logger.info(
                f"No JSON found for {profile.name}",
                profile_url=profile.url,
                response_time_ms=response_time_ms,
            )
            return []

        items = [RawItem.from_dict(entry) for entry in data if isinstance(entry, dict)]
        self.logger.info(
            f"Model returned {len(items)} candidate items",
            profile_url=profile.url,
            response_time_ms=response_time_ms,
        )
        return items

    def _response_text(self, response_body: dict) -> str:
        """Pull the generated text out of an Invoke API response."""
        try:
            content = response_body["output"]["message"]["content"]
        except (KeyError, TypeError):
            available = (
                list(response_body) if isinstance(response_body, dict) else type(response_body).__name__
            )
            self.logger.error(f"Response missing output/message. Available: {available}")
            raise DiscoveryResponseError("Unexpected Bedrock response structure")
        return "".join(block.get("text", "") for block in content if isinstance(block, dict))
