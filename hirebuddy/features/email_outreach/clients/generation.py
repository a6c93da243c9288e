"""
OpenAI-backed draft generation.
Builds the prompts from a contact and profile snapshot and parses the JSON
subject/body reply. One call per request; the orchestrator bounds the wait.
"""

import json
import re
from typing import Any

import openai
from openai import AsyncOpenAI

from hirebuddy.config import settings
from hirebuddy.features.email_outreach.domain.models import (
    GenerationRequest,
    GenerationResponse,
    ProfileSnapshot,
)
from hirebuddy.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

TYPE_GUIDELINES = {
    "cold_outreach": (
        "Focus on building rapport and offering value. Mention specific achievements or "
        "skills that would interest the recipient."
    ),
    "follow_up": (
        "Reference previous communication politely. Show continued interest and provide "
        "additional value."
    ),
    "job_application": (
        "Highlight relevant experience and skills that match the role. Show enthusiasm for "
        "the specific position."
    ),
    "networking": (
        "Focus on mutual connections, shared interests, or industry insights. Keep it "
        "conversational."
    ),
    "partnership": "Emphasize mutual benefits and specific collaboration opportunities.",
}


class EmailGenerationError(Exception):
    """Raised when draft generation fails."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class EmailGenerationService:
    """
    Generates personalized outreach drafts with the OpenAI chat API.

    The client is created on first use so the service can be imported without
    an API key.
    """

    def __init__(self, client: AsyncOpenAI | None = None):
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise EmailGenerationError(
                    "OPENAI_API_KEY not configured in settings", recoverable=False
                )
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.GENERATION_TIMEOUT_SECONDS,
                max_retries=0,
            )
            logger.info("OpenAI client initialized", model=settings.OPENAI_MODEL)
        return self._client

    def build_system_prompt(self, email_type: str, tone: str) -> str:
        """System prompt with writing rules, tone, type and the JSON contract."""
        return f"""You are an email writing assistant for job seekers and professionals. Every email you write is:

1. PERSONALIZED - uses specific details about the recipient and the sender
2. CONCISE - 150 to 250 words
3. PROFESSIONAL - keeps an appropriate business register
4. ACTION-ORIENTED - ends with a clear call to action
5. AUTHENTIC - sounds like a person wrote it, not a template

TONE: {tone}
EMAIL TYPE: {email_type}

GUIDELINES:
- Use only the profile details that matter to this recipient
- Mention the recipient's name and company naturally
- Keep the subject line compelling and short (6-8 words)
- Separate paragraphs with a blank line (\\n\\n)

RESPONSE FORMAT:
Return ONLY a JSON object:
{{"subject": "...", "body": "...", "reasoning": "one sentence on the personalization choices"}}

SPECIFIC GUIDELINES FOR {email_type.upper()}:
{TYPE_GUIDELINES.get(email_type, TYPE_GUIDELINES["cold_outreach"])}"""

    def build_user_prompt(self, request: GenerationRequest) -> str:
        """User prompt listing the recipient, the sender profile and any instructions."""
        contact = request.contact
        lines = [
            "Write a personalized email with the following information.",
            "",
            "RECIPIENT:",
            f"- Name: {contact.name}",
            f"- Email: {contact.email}",
        ]
        if contact.company:
            lines.append(f"- Company: {contact.company}")
        if contact.title:
            lines.append(f"- Position: {contact.title}")
        if contact.linkedin_link:
            lines.append(f"- LinkedIn: {contact.linkedin_link}")

        lines.append("")
        lines.append("SENDER:")
        lines.extend(_profile_lines(request.user_profile))

        if request.target_roles:
            lines.append("")
            lines.append("TARGET ROLES:")
            lines.append(
                "The sender is looking for opportunities in: " + ", ".join(request.target_roles)
            )

        if request.custom_instructions:
            lines.append("")
            lines.append("CUSTOM INSTRUCTIONS:")
            lines.append(request.custom_instructions)

        lines.append("")
        lines.append(
            "Pick only the most relevant sender details, reference the recipient specifically, "
            "and tailor the email to the target roles when they are given. "
            "Respond in the JSON format from the system prompt."
        )
        return "\n".join(lines)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Generate a subject and body for the request.

        Raises:
            EmailGenerationError: If the API call fails or the reply is unusable
        """
        client = self._get_client()
        system_message = self.build_system_prompt(request.email_type, request.tone)
        user_message = self.build_user_prompt(request)

        logger.info(
            "Generating email draft",
            contact_id=request.contact.id,
            email_type=request.email_type,
            tone=request.tone,
        )

        try:
            response = await client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=settings.OPENAI_MAX_TOKENS,
                temperature=settings.OPENAI_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            logger.warning("OpenAI API timeout", error=str(e))
            raise EmailGenerationError("Draft generation timed out", api_error=str(e)) from e
        except openai.RateLimitError as e:
            logger.warning("OpenAI rate limit hit", error=str(e))
            raise EmailGenerationError(
                "Draft generation is busy, please try again shortly", api_error=str(e)
            ) from e
        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise EmailGenerationError("Draft generation failed", api_error=str(e)) from e

        if not response.choices or not response.choices[0].message.content:
            raise EmailGenerationError("Empty response from OpenAI API")

        result = self.parse_response(response.choices[0].message.content)
        logger.info(
            "Email draft generated",
            contact_id=request.contact.id,
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return result

    def parse_response(self, raw_result: str) -> GenerationResponse:
        """Parse the outermost JSON object of the reply; subject and body are required."""
        match = _JSON_OBJECT.search(raw_result.strip())
        if not match:
            raise EmailGenerationError("OpenAI returned no JSON object")

        try:
            parsed: dict[str, Any] = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse OpenAI response as JSON", error=str(e), raw_result=raw_result[:200]
            )
            raise EmailGenerationError("OpenAI returned invalid JSON") from e

        subject = str(parsed.get("subject") or "").strip()
        body = str(parsed.get("body") or "").strip()
        if not subject or not body:
            raise EmailGenerationError("OpenAI reply is missing subject or body")

        return GenerationResponse(
            subject=subject, body=body, reasoning=parsed.get("reasoning") or None
        )


def _profile_lines(profile: ProfileSnapshot) -> list[str]:
    lines = []
    simple_fields = (
        ("Name", profile.full_name),
        ("Current Title", profile.title),
        ("Current Company", profile.company),
        ("Location", profile.location),
        ("Education", profile.college),
        ("Years of Experience", profile.experience_years),
        ("Phone", profile.phone),
    )
    for label, value in simple_fields:
        if value:
            lines.append(f"- {label}: {value}")

    if profile.available_for_work is not None:
        lines.append(f"- Available for Work: {'Yes' if profile.available_for_work else 'No'}")
    if profile.bio:
        lines.append(f"- Bio: {profile.bio}")
    if profile.skills:
        lines.append(f"- Key Skills: {', '.join(profile.skills[:8])}")

    if profile.experiences:
        lines.append("- Work Experience:")
        for number, exp in enumerate(profile.experiences[:3], start=1):
            line = f"  {number}. {exp.job_title} at {exp.company}"
            if exp.location:
                line += f" ({exp.location})"
            if exp.start_date or exp.end_date or exp.is_current:
                start = exp.start_date.year if exp.start_date else "Unknown"
                end = "Present" if exp.is_current else (exp.end_date.year if exp.end_date else "Unknown")
                line += f" | {start} - {end}"
            lines.append(line)
            if exp.description:
                description = exp.description
                if len(description) > 100:
                    description = description[:100] + "..."
                lines.append(f"     Description: {description}")
            if exp.achievements:
                lines.append(f"     Key Achievements: {'; '.join(exp.achievements[:2])}")
            if exp.skills_used:
                lines.append(f"     Skills Used: {', '.join(exp.skills_used[:5])}")

    for label, value in (
        ("LinkedIn", profile.linkedin),
        ("GitHub", profile.github),
        ("Website", profile.website),
    ):
        if value:
            lines.append(f"- {label}: {value}")
    return lines


email_generation_service = EmailGenerationService()
