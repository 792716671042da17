"""Advanced matching filter for newly scraped jobs.

Decides the initial status of a job in two stages:

1. Deny-list: the company name is compared (case-insensitive, full name)
   against the user's blacklisted companies. Free and deterministic.
2. Semantic: the user's free-text policy, the job title and the job
   description are sent to an LLM that answers with a single token.
   Only an explicit "yes" excludes the job; any other answer includes it.

Both stages require an active "pro" subscription and an advanced matching
config. The semantic stage also requires a description and is metered.
"""

import logging
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import select

from jobfeed.config import settings
from jobfeed.context import RequestContext
from jobfeed.models import AdvancedMatching, JobStatus, Profile
from jobfeed.services.llm import ChatCompletion
from jobfeed.services.usage import UsageIncrement, UsageMeter
from jobfeed.utils.timestamps import ensure_utc, utc_now

logger = logging.getLogger(__name__)

REQUIRED_TIER = "pro"
EXCLUDE_ANSWER = "yes"

SYSTEM_PROMPT = """You are an assistant trained to determine if a job description should be excluded based on specific criteria.
You will have to analyze a job description and answer if it should be excluded based on the user's requirements.
Special mentions:
- regarding excluded keywords like tech stack or skills, if at least one of them is mentioned, the job should be excluded. If none of them are mentioned, the job should be included.
- if the user is requesting a minimum salary, it should be fine if the job just says: "Up to x amount" or "Depending on experience". Also the currency can be ignored.
- if the job does not mention a salary range, ignore salary requirements by the user (this rule can be overridden by the user if they want to exclude jobs without a salary range).
- only consider a job description unsuitable based on remoteness if the user explicitly restricts their interest to certain locations (e.g., "fully remote jobs in the UK") and the description specifies otherwise (e.g., "remote only in Belgium").
- treat the absence of specific details (such as PTO days or remote work specifics) neutrally unless the user specifies that such details are a deciding factor.
- job level/title: only disqualify based on job level if the description clearly conflicts with the user's specified job level.
- contract type: do not disqualify if contract type is unspecified, unless explicitly required by the user.
- location/relocation: treat location neutrally unless the user specifies no willingness to relocate or a specific geographic preference.
- benefits/company culture: absence of benefits or cultural descriptors should not disqualify a job unless specifically stated by the user as a requirement.
- technological tools: only jobs mandating undesired technologies should be disqualified, absence of mention should be neutral.
- working hours: absence of detailed working hours should not disqualify a job unless specific hours are a user requirement.
- experience: interpret any specified maximum or minimum years of experience in relation to what is stated in the job description. If the job specifies an experience range, the job should be considered a match if the user's requirement fits within this range or aligns with its maximum. Absence of experience details should not disqualify the job unless the user explicitly requires them.
"""


class MatchableJob(Protocol):
    """Fields the filter reads; satisfied by the Job model and JobCreate."""

    title: str
    company_name: str
    description: str | None


class ChatClient(Protocol):
    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = ...,
        max_tokens: int = ...,
        top_p: float = ...,
        frequency_penalty: float = ...,
        presence_penalty: float = ...,
    ) -> ChatCompletion: ...


def has_advanced_matching(profile: Profile | None, now: datetime) -> bool:
    """Whether the profile is entitled to advanced matching at ``now``."""
    if profile is None:
        return False
    if profile.subscription_tier != REQUIRED_TIER:
        return False
    return ensure_utc(profile.subscription_end_date) > ensure_utc(now)


def is_excluded_company(company_name: str, blacklisted_companies: list[str]) -> bool:
    """Full, case-insensitive company name match against the deny-list."""
    name = company_name.lower()
    return any(name == company.lower() for company in blacklisted_companies or [])


def build_user_prompt(prompt: str, title: str, description: str) -> str:
    """User message embedding the policy, the title and the description."""
    return f"""Analyze the following job description and answer if it should be excluded based on these filters:
{prompt}

Job Title: "{title}"
Job Description:
"{description}"

Should this job be excluded from the user's feed? Reply with 'yes' or 'no'."""


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    input_cost_per_million: float | None = None,
    output_cost_per_million: float | None = None,
) -> float:
    """Estimated USD cost of a call from its token counts."""
    if input_cost_per_million is None:
        input_cost_per_million = settings.llm_input_cost_per_million
    if output_cost_per_million is None:
        output_cost_per_million = settings.llm_output_cost_per_million

    return (
        input_cost_per_million * input_tokens / 1_000_000
        + output_cost_per_million * output_tokens / 1_000_000
    )


def answer_excludes(answer: str) -> bool:
    """Only an explicit "yes" excludes; anything else keeps the job.

    The comparison ignores case and surrounding whitespace, so "Yes", "yes"
    and "YES" all exclude, not only the exact token "Yes".
    """
    return answer.strip().lower() == EXCLUDE_ANSWER


async def classify_job(
    job: MatchableJob,
    config: AdvancedMatching | None,
    profile: Profile | None,
    now: datetime,
    llm: ChatClient,
    meter: UsageMeter | None,
    user_id: UUID | None = None,
) -> JobStatus:
    """Decide the initial status of a freshly scraped job.

    Args:
        job: Job being ingested
        config: User's advanced matching config, if any
        profile: User's subscription profile, if any
        now: Reference time for the subscription check
        llm: Chat completion client for the semantic stage
        meter: Usage meter receiving the cost of the semantic stage
        user_id: Owner used for metering (defaults to ``job.user_id``)

    Returns:
        JobStatus.NEW or JobStatus.EXCLUDED_BY_ADVANCED_MATCHING

    Raises:
        RemoteCallError: If the LLM call fails after all retries
    """
    if not has_advanced_matching(profile, now):
        logger.debug("User does not have advanced matching enabled")
        return JobStatus.NEW

    if config is None:
        logger.debug("No advanced matching config for user")
        return JobStatus.NEW

    if is_excluded_company(job.company_name, config.blacklisted_companies):
        logger.info(f"Job excluded due to company name: {job.company_name}")
        return JobStatus.EXCLUDED_BY_ADVANCED_MATCHING

    if not job.description:
        return JobStatus.NEW

    logger.info(f"Prompting LLM to check job '{job.title}' at {job.company_name}")
    completion = await llm.complete(
        SYSTEM_PROMPT,
        build_user_prompt(config.chatgpt_prompt, job.title, job.description),
        temperature=0.0,
        max_tokens=1,
        top_p=1.0,
        frequency_penalty=0.0,
        presence_penalty=0.0,
    )

    cost = estimate_cost(completion.input_tokens, completion.output_tokens)
    logger.debug(
        f"Tokens used: {completion.input_tokens} {completion.output_tokens}, "
        f"estimated cost: ${cost:.8f}"
    )

    owner = user_id if user_id is not None else getattr(job, "user_id", None)
    if meter is not None and owner is not None:
        meter.record(
            owner,
            UsageIncrement(
                cost=cost,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
            ),
        )

    if answer_excludes(completion.content):
        logger.info(f"Job '{job.title}' excluded by LLM")
        return JobStatus.EXCLUDED_BY_ADVANCED_MATCHING

    logger.info(f"Job '{job.title}' passed all advanced matching filters")
    return JobStatus.NEW


async def load_matching_inputs(
    ctx: RequestContext,
) -> tuple[AdvancedMatching | None, Profile | None]:
    """Load the user's advanced matching config and profile."""
    result = await ctx.db.execute(
        select(Profile).where(Profile.user_id == ctx.user_id)
    )
    profile = result.scalar_one_or_none()

    result = await ctx.db.execute(
        select(AdvancedMatching).where(AdvancedMatching.user_id == ctx.user_id)
    )
    config = result.scalar_one_or_none()

    return config, profile


async def apply_advanced_matching(
    ctx: RequestContext,
    job: MatchableJob,
    llm: ChatClient,
    meter: UsageMeter | None,
    now: datetime | None = None,
) -> JobStatus:
    """Load the user's matching inputs from storage and classify one job."""
    config, profile = await load_matching_inputs(ctx)
    return await classify_job(
        job,
        config,
        profile,
        now or utc_now(),
        llm,
        meter,
        user_id=ctx.user_id,
    )


async def get_advanced_matching(ctx: RequestContext) -> AdvancedMatching | None:
    result = await ctx.db.execute(
        select(AdvancedMatching).where(AdvancedMatching.user_id == ctx.user_id)
    )
    return result.scalar_one_or_none()


async def upsert_advanced_matching(
    ctx: RequestContext,
    chatgpt_prompt: str,
    blacklisted_companies: list[str],
) -> AdvancedMatching:
    """Create or replace the user's advanced matching config."""
    config = await get_advanced_matching(ctx)
    # Drop blanks and duplicate names (case-insensitive), keep first spelling
    seen: set[str] = set()
    companies = []
    for company in blacklisted_companies:
        name = company.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            companies.append(name)

    if config is None:
        config = AdvancedMatching(
            user_id=ctx.user_id,
            chatgpt_prompt=chatgpt_prompt,
            blacklisted_companies=companies,
        )
        ctx.db.add(config)
    else:
        config.chatgpt_prompt = chatgpt_prompt
        config.blacklisted_companies = companies

    await ctx.db.commit()
    await ctx.db.refresh(config)

    logger.info(
        f"Saved advanced matching config for user {ctx.user_id} "
        f"({len(companies)} blacklisted companies)"
    )
    return config
