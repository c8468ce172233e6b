#!/usr/bin/env python3
"""
GitHub Stale Branch Slack Notifier

This script identifies stale branches in a GitHub repository and sends
a Slack message to each branch's last-known author.

For every non-protected branch the tip commit is fetched and its committer
date compared against the configured threshold. Stale branches are grouped
by the GitHub login of the commit author and one digest per author is
posted to a Slack incoming webhook.

Every GitHub call (and the webhook POST) goes through a retry policy that
honours rate-limit hints and otherwise backs off exponentially.
"""

import argparse
import enum
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, TypeVar

import requests
import yaml
from github import Auth, Github, GithubException
from jinja2 import Environment


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

T = TypeVar('T')


DIGEST_TEMPLATE = (
    "{{ mention }} you have {{ branches|length }} stale branches:\n"
    "{% for branch in branches %}"
    "`{{ branch.name }}` - stale by {{ branch.days_since_last_commit|duration }}\n"
    "{% endfor %}"
    "\n\n====================\n\n"
)

# Default configuration values
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BATCH_SIZE = 10
DEFAULT_PER_PAGE = 100
DEFAULT_WEBHOOK_TIMEOUT = 30

UNKNOWN_AUTHOR = 'UNKNOWN'

# Marks a branch whose commit date could not be determined
UNKNOWN_AGE = -1.0

SECONDS_PER_DAY = 86400

# Statuses that signal a rate limit when paired with a retry-after header
RATE_LIMIT_STATUSES = (403, 429)

# GitHub statuses that no amount of retrying will fix
FATAL_GITHUB_STATUSES = (401, 404, 422)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""


# =============================================================================
# Data Model
# =============================================================================


@dataclass(frozen=True)
class BranchRef:
    """A branch name and the SHA of its tip commit."""

    name: str
    sha: str


@dataclass(frozen=True)
class AuthorIdentity:
    """
    Author of a branch's tip commit.

    Either a known GitHub login or unknown (``login`` is None), which is the
    case for commits whose email is not linked to any GitHub account.
    """

    login: Optional[str] = None

    @classmethod
    def unknown(cls) -> 'AuthorIdentity':
        return cls(None)

    @property
    def is_known(self) -> bool:
        return self.login is not None

    def __str__(self) -> str:
        return self.login if self.is_known else UNKNOWN_AUTHOR


@dataclass(frozen=True)
class StaleBranchRecord:
    """Age of a single branch, in fractional days since its last commit."""

    name: str
    days_since_last_commit: float
    author: AuthorIdentity = field(default_factory=AuthorIdentity.unknown)

    @property
    def has_known_age(self) -> bool:
        return self.days_since_last_commit != UNKNOWN_AGE


# Stale branches per author, each list sorted most stale first
AuthorDigest = Dict[AuthorIdentity, List[StaleBranchRecord]]


@dataclass(frozen=True)
class Config:
    """Run configuration, built once by load_config and passed to every component."""

    repository: str
    days_before_stale: int
    slack_webhook_url: str
    token: str
    slack_users: Mapping[str, str] = field(default_factory=dict)
    api_url: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    dry_run: bool = False


# =============================================================================
# Retry Policy
# =============================================================================


class RetryAction(enum.Enum):
    RATE_LIMITED = 'rate_limited'
    RETRYABLE = 'retryable'
    FATAL = 'fatal'


@dataclass(frozen=True)
class RetryDecision:
    action: RetryAction
    wait_seconds: float = 0.0


def _failure_status_and_headers(exc: Exception) -> tuple:
    """Extract the HTTP status and response headers carried by a failure, if any."""
    if isinstance(exc, GithubException):
        return exc.status, exc.headers or {}
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code, exc.response.headers or {}
    return None, {}


def _get_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """Return the retry-after hint in seconds, or None when absent or unparsable."""
    for key, value in headers.items():
        if key.lower() == 'retry-after':
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    return None


def classify_failure(exc: Exception) -> RetryDecision:
    """
    Decide how a failed call should be retried.

    A 403 or 429 response with a retry-after header is a rate limit and is
    retried after exactly the hinted delay. Authentication failures, missing
    objects and validation errors from GitHub, and client errors from the
    webhook other than rate limits, are fatal. Everything else (connection
    errors, timeouts, 5xx responses) is retried with backoff.

    Args:
        exc: The exception raised by the failed call

    Returns:
        RetryDecision describing how to proceed
    """
    status, headers = _failure_status_and_headers(exc)

    if status in RATE_LIMIT_STATUSES:
        retry_after = _get_retry_after(headers)
        if retry_after is not None:
            return RetryDecision(RetryAction.RATE_LIMITED, retry_after)

    if isinstance(exc, GithubException) and status in FATAL_GITHUB_STATUSES:
        return RetryDecision(RetryAction.FATAL)

    if (
        isinstance(exc, requests.HTTPError)
        and status is not None
        and 400 <= status < 500
        and status not in RATE_LIMIT_STATUSES
    ):
        return RetryDecision(RetryAction.FATAL)

    return RetryDecision(RetryAction.RETRYABLE)


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait after the given (1-based) failed attempt: 2, 4, 8, ..."""
    return float(2 ** attempt)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry for outbound calls.

    Rate-limit waits count toward max_attempts like any other failure.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    classify: Callable[[Exception], RetryDecision] = classify_failure
    backoff: Callable[[int], float] = exponential_backoff
    sleep: Callable[[float], None] = time.sleep


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    description: str = 'Request'
) -> T:
    """
    Run a zero-argument operation, retrying according to the policy.

    Args:
        operation: Callable performing the network call
        policy: Retry policy to apply
        description: Short label used in log messages

    Returns:
        The operation's return value

    Raises:
        The last exception raised by the operation once attempts are exhausted,
        or the first exception the policy classifies as fatal.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except (GithubException, requests.RequestException) as e:
            if attempt == policy.max_attempts:
                raise

            decision = policy.classify(e)
            if decision.action is RetryAction.FATAL:
                raise

            if decision.action is RetryAction.RATE_LIMITED:
                wait_seconds = decision.wait_seconds
                logger.info(
                    f"{description}: rate limited. Waiting {wait_seconds:g} seconds before retry..."
                )
            else:
                wait_seconds = policy.backoff(attempt)
                logger.info(
                    f"{description} failed ({e}). Retrying in {wait_seconds:g} seconds "
                    f"(attempt {attempt}/{policy.max_attempts})..."
                )
            policy.sleep(wait_seconds)

    raise RuntimeError('Max retries exceeded')


# =============================================================================
# Configuration
# =============================================================================


def parse_slack_users(raw: Optional[str]) -> Dict[str, str]:
    """
    Parse a ``login:handle`` list separated by commas into a mapping.

    Entries without a colon are ignored. A handle may itself contain colons.

    Args:
        raw: String such as ``"alice:@al,bob:<@U123>"``

    Returns:
        Dictionary mapping GitHub login to Slack mention handle
    """
    slack_users = {}
    for entry in (raw or '').split(','):
        login, sep, handle = entry.partition(':')
        login = login.strip()
        if not sep or not login:
            if entry.strip():
                logger.warning(f"Ignoring malformed SLACK_USERS entry: {entry.strip()!r}")
            continue
        slack_users[login] = handle.strip()
    return slack_users


def _clamp_setting(name: str, raw_value, default: int, lower: int, upper: int) -> int:
    """
    Validate an integer tuning setting, clamping it to a safe range.

    Invalid values are logged and replaced with the default.
    """
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid '{name}' value {raw_value!r} in config; "
            f"falling back to default {default}"
        )
        return default

    if value < lower or value > upper:
        clamped = min(max(value, lower), upper)
        logger.warning(
            f"Configured '{name}' ({value}) is out of allowed range {lower}-{upper}; "
            f"using {clamped} instead"
        )
        return clamped

    return value


def validate_config(config: Config) -> None:
    """
    Validate that all required configuration values are present and sane.

    Args:
        config: Configuration to validate

    Raises:
        ConfigurationError: If required values are missing or invalid
    """
    if not config.token:
        raise ConfigurationError('STALE_BRANCH_TOKEN environment variable is not defined')

    if not config.slack_webhook_url:
        raise ConfigurationError("Missing required input: 'slack-webhook-url'")

    if config.days_before_stale < 0:
        raise ConfigurationError(
            f"'days-before-stale' must not be negative, got {config.days_before_stale}"
        )

    if not config.repository:
        raise ConfigurationError(
            "No repository configured. Set GITHUB_REPOSITORY or pass --repository owner/repo."
        )

    owner, sep, repo = config.repository.partition('/')
    if not sep or not owner or not repo or '/' in repo:
        raise ConfigurationError(
            f"Invalid repository '{config.repository}'. Expected 'owner/repo'."
        )


def _read_config_file(config_path: str) -> dict:
    """Load the optional YAML configuration file."""
    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return data


def _first_set(*values):
    """Return the first value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != '':
            return value
    return None


def load_config(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build the run configuration from CLI arguments, an optional YAML file
    and the environment, in that order of precedence.

    This is the only place the environment is read.

    Args:
        args: Parsed command line arguments
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Config

    Raises:
        ConfigurationError: If required values are missing or invalid
        OSError: If a config file was given but cannot be read
        yaml.YAMLError: If the config file is not valid YAML
    """
    env = os.environ if environ is None else environ
    file_config = _read_config_file(args.config) if getattr(args, 'config', None) else {}
    github_section = file_config.get('github') or {}
    if not isinstance(github_section, dict):
        raise ConfigurationError(
            f"'github' must be a mapping with an 'api_url' key, got {github_section!r}"
        )

    raw_days = _first_set(
        getattr(args, 'days_before_stale', None),
        file_config.get('days_before_stale'),
        env.get('INPUT_DAYS-BEFORE-STALE'),
        env.get('DAYS_BEFORE_STALE'),
    )
    if raw_days is None:
        raise ConfigurationError("Missing required input: 'days-before-stale'")
    try:
        days_before_stale = int(str(raw_days).strip())
    except ValueError as e:
        raise ConfigurationError(
            f"'days-before-stale' must be an integer, got {raw_days!r}"
        ) from e

    raw_slack_users = _first_set(file_config.get('slack_users'), env.get('SLACK_USERS'))
    if raw_slack_users is not None and not isinstance(raw_slack_users, (dict, str)):
        raise ConfigurationError(
            f"'slack_users' must be a mapping or a 'login:handle' string, got {raw_slack_users!r}"
        )
    if isinstance(raw_slack_users, dict):
        slack_users = {str(k): '' if v is None else str(v) for k, v in raw_slack_users.items()}
    else:
        slack_users = parse_slack_users(raw_slack_users)

    config = Config(
        repository=_first_set(
            getattr(args, 'repository', None),
            file_config.get('repository'),
            env.get('GITHUB_REPOSITORY'),
        ) or '',
        days_before_stale=days_before_stale,
        slack_webhook_url=_first_set(
            getattr(args, 'slack_webhook_url', None),
            file_config.get('slack_webhook_url'),
            env.get('INPUT_SLACK-WEBHOOK-URL'),
            env.get('SLACK_WEBHOOK_URL'),
        ) or '',
        token=env.get('STALE_BRANCH_TOKEN') or '',
        slack_users=slack_users,
        api_url=_first_set(github_section.get('api_url'), env.get('GITHUB_API_URL')),
        batch_size=_clamp_setting(
            'batch_size', file_config.get('batch_size', DEFAULT_BATCH_SIZE),
            DEFAULT_BATCH_SIZE, 1, 32
        ),
        max_attempts=_clamp_setting(
            'max_attempts', file_config.get('max_attempts', DEFAULT_MAX_ATTEMPTS),
            DEFAULT_MAX_ATTEMPTS, 1, 10
        ),
        dry_run=bool(getattr(args, 'dry_run', False)),
    )
    validate_config(config)
    return config


def create_github_client(config: Config) -> Github:
    """
    Create a GitHub client for the configured token.

    PyGithub's built-in retry is disabled so that call_with_retry is the only
    retry layer; pages are requested 100 at a time.
    """
    kwargs = {
        'auth': Auth.Token(config.token),
        'per_page': DEFAULT_PER_PAGE,
        'retry': None,
    }
    if config.api_url:
        kwargs['base_url'] = config.api_url
    return Github(**kwargs)


# =============================================================================
# Branch Enumeration and Staleness
# =============================================================================


def parse_commit_date(date_str: str) -> datetime:
    """
    Parse a commit date string into a datetime object.

    Handles the ISO 8601 variants GitHub returns. Dates without an offset are
    taken to be UTC.

    Args:
        date_str: Date string in ISO 8601 format

    Returns:
        datetime object with timezone info

    Raises:
        ValueError: If the date cannot be parsed
    """
    if not isinstance(date_str, str) or not date_str.strip():
        raise ValueError(f"Unable to parse date: {date_str!r}")

    date_str = date_str.strip()
    # Handle 'Z' suffix (UTC)
    if date_str.endswith('Z'):
        date_str = date_str[:-1] + '+00:00'

    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        formats = [
            '%Y-%m-%dT%H:%M:%S%z',
            '%Y-%m-%dT%H:%M:%S.%f%z',
            '%Y-%m-%d %H:%M:%S%z',
        ]
        for fmt in formats:
            try:
                parsed = datetime.strptime(date_str, fmt)
                break
            except ValueError:
                continue
        else:
            raise ValueError(f"Unable to parse date: {date_str}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def list_branches(repo, policy: RetryPolicy, per_page: int = DEFAULT_PER_PAGE) -> List[BranchRef]:
    """
    Get all non-protected branches of a repository, page by page.

    Paging stops at the first page holding fewer than per_page branches. If a
    page still fails after the retry policy gives up, the branches collected
    so far are returned.

    Args:
        repo: PyGithub Repository
        policy: Retry policy for each page fetch
        per_page: Page size the client was configured with

    Returns:
        List of BranchRef in page order
    """
    branches = []
    paginated = repo.get_branches()
    page = 0
    pages_fetched = 0

    try:
        while True:
            current_page = page
            items = call_with_retry(
                lambda: paginated.get_page(current_page),
                policy,
                f"Listing branches (page {current_page + 1})"
            )
            pages_fetched += 1

            for branch in items:
                if getattr(branch, 'protected', False):
                    logger.debug(f"Skipping protected branch: {branch.name}")
                    continue
                branches.append(BranchRef(name=branch.name, sha=branch.commit.sha))

            if len(items) < per_page:
                break

            page += 1
    except (GithubException, requests.RequestException) as e:
        logger.warning(
            f"Error fetching branches: {e}. Continuing with {len(branches)} branch(es)."
        )

    logger.info(f"Found {len(branches)} non-protected branch(es) in {pages_fetched} page(s)")
    return branches


def _get_committer_date(raw_commit: dict) -> Optional[datetime]:
    """Return the committer date of a raw commit payload, or None if unusable."""
    date_str = ((raw_commit.get('commit') or {}).get('committer') or {}).get('date')
    if not date_str:
        return None
    try:
        return parse_commit_date(date_str)
    except ValueError as e:
        logger.debug(f"Malformed committer date {date_str!r}: {e}")
        return None


def _get_author_identity(raw_commit: dict) -> AuthorIdentity:
    """Return the GitHub account of a raw commit payload's author."""
    login = (raw_commit.get('author') or {}).get('login')
    return AuthorIdentity(login) if login else AuthorIdentity.unknown()


def days_since(commit_date: datetime, now: datetime) -> float:
    """Fractional days elapsed between commit_date and now, never negative."""
    return max(0.0, (now - commit_date).total_seconds() / SECONDS_PER_DAY)


def classify_branch(repo, branch: BranchRef, policy: RetryPolicy, now: datetime) -> StaleBranchRecord:
    """
    Fetch a branch's tip commit and compute how long ago it was committed.

    Args:
        repo: PyGithub Repository
        branch: Branch to classify
        policy: Retry policy for the commit fetch
        now: Reference time for the age computation

    Returns:
        StaleBranchRecord; days_since_last_commit is UNKNOWN_AGE when the
        commit carries no usable committer date
    """
    commit = call_with_retry(
        lambda: repo.get_commit(branch.sha),
        policy,
        f"Fetching commit for branch {branch.name}"
    )
    raw_commit = commit.raw_data or {}
    author = _get_author_identity(raw_commit)

    commit_date = _get_committer_date(raw_commit)
    if commit_date is None:
        logger.warning(
            f"Could not get commit date for branch {branch.name}. Excluding it."
        )
        return StaleBranchRecord(branch.name, UNKNOWN_AGE, author)

    return StaleBranchRecord(branch.name, days_since(commit_date, now), author)


def classify_branches(
    repo,
    branches: List[BranchRef],
    policy: RetryPolicy,
    batch_size: int = DEFAULT_BATCH_SIZE,
    now: Optional[datetime] = None
) -> List[StaleBranchRecord]:
    """
    Classify branches in sequential batches, each batch in parallel.

    At most batch_size commit fetches are outstanding at any time. A branch
    whose classification fails is logged and left out of the result.

    Args:
        repo: PyGithub Repository
        branches: Branches to classify
        policy: Retry policy for the commit fetches
        batch_size: Number of branches classified concurrently
        now: Reference time (defaults to the current UTC time)

    Returns:
        List of StaleBranchRecord, in branch order, for every branch that
        could be classified
    """
    now = now or datetime.now(timezone.utc)
    records = []

    # PyGithub is safe for concurrent read requests on a shared client.
    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for start in range(0, len(branches), batch_size):
            batch = branches[start:start + batch_size]
            futures = [
                (branch, executor.submit(classify_branch, repo, branch, policy, now))
                for branch in batch
            ]

            for branch, future in futures:
                try:
                    records.append(future.result())
                except Exception as e:
                    logger.warning(f"Failed to process branch {branch.name}: {e}")

    return records


# =============================================================================
# Aggregation and Formatting
# =============================================================================


def group_stale_branches(records: List[StaleBranchRecord], days_before_stale: int) -> AuthorDigest:
    """
    Group stale branches by author, most stale first.

    A branch is stale when its age is known and at least days_before_stale.

    Args:
        records: Classified branches
        days_before_stale: Staleness threshold in days

    Returns:
        AuthorDigest, authors in order of first appearance
    """
    digest = {}
    for record in records:
        if not record.has_known_age or record.days_since_last_commit < days_before_stale:
            continue
        digest.setdefault(record.author, []).append(record)

    for author_records in digest.values():
        author_records.sort(key=lambda r: r.days_since_last_commit, reverse=True)

    return digest


def _pluralize(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def format_duration(days: float) -> str:
    """
    Render a day count as years, months and days.

    Uses 365-day years and 30-day months, e.g. 400 -> "1 year 1 month 5 days".
    """
    total_days = int(days)
    years, remainder = divmod(total_days, 365)
    months, remaining_days = divmod(remainder, 30)

    parts = []
    if years > 0:
        parts.append(_pluralize(years, 'year'))
    if months > 0:
        parts.append(_pluralize(months, 'month'))
    if remaining_days > 0:
        parts.append(_pluralize(remaining_days, 'day'))

    return ' '.join(parts) or '0 days'


def resolve_mention(author: AuthorIdentity, slack_users: Mapping[str, str]) -> str:
    """
    Return how an author is addressed in Slack.

    ``"<handle> (<login>)"`` when the login has a mapping entry (even an empty
    one), otherwise ``"@<login>"``.
    """
    login = str(author)
    if login in slack_users:
        return f"{slack_users[login]} ({login})"
    return f"@{login}"


_jinja_env = Environment(keep_trailing_newline=True)
_jinja_env.filters['duration'] = format_duration


def format_digest(
    author: AuthorIdentity,
    records: List[StaleBranchRecord],
    slack_users: Mapping[str, str]
) -> str:
    """
    Render the Slack message for one author.

    Args:
        author: Recipient
        records: The author's stale branches, most stale first
        slack_users: GitHub login to Slack handle mapping

    Returns:
        Message text
    """
    template = _jinja_env.from_string(DIGEST_TEMPLATE)
    return template.render(
        mention=resolve_mention(author, slack_users),
        branches=records,
    )


# =============================================================================
# Notification
# =============================================================================


def send_digest(
    webhook_url: str,
    text: str,
    policy: RetryPolicy,
    dry_run: bool = False,
    timeout: int = DEFAULT_WEBHOOK_TIMEOUT
) -> None:
    """
    Post a message to a Slack incoming webhook.

    Args:
        webhook_url: Slack incoming webhook URL
        text: Message text
        policy: Retry policy for the POST
        dry_run: If True, log the message instead of posting it
        timeout: Request timeout in seconds

    Raises:
        requests.RequestException: If the POST still fails after retries
    """
    if dry_run:
        logger.info(f"[DRY RUN] Would post to Slack:\n{text}")
        return

    def post():
        response = requests.post(
            webhook_url,
            json={'text': text},
            headers={'Content-Type': 'application/json'},
            timeout=timeout,
        )
        response.raise_for_status()
        return response

    call_with_retry(post, policy, 'Posting Slack message')


def notify_authors(config: Config, digest: AuthorDigest, policy: RetryPolicy) -> dict:
    """
    Send one message per author with stale branches.

    Every author is attempted; a failed delivery is logged and recorded
    without stopping the remaining ones.

    Args:
        config: Run configuration
        digest: Stale branches per author
        policy: Retry policy for each POST

    Returns:
        Summary of messages sent and failed
    """
    summary = {
        'messages_sent': 0,
        'messages_failed': 0,
        'recipients': [],
        'failures': [],
    }

    for author, records in digest.items():
        if not records:
            continue

        text = format_digest(author, records, config.slack_users)
        try:
            send_digest(config.slack_webhook_url, text, policy, dry_run=config.dry_run)
        except requests.RequestException as e:
            logger.error(f"Failed to notify {author}: {e}")
            summary['messages_failed'] += 1
            summary['failures'].append({'author': str(author), 'error': str(e)})
            continue

        logger.info(f"Notified {author} about {len(records)} stale branch(es)")
        summary['messages_sent'] += 1
        summary['recipients'].append(str(author))

    return summary


def notify_stale_branches(
    config: Config,
    gh: Optional[Github] = None,
    policy: Optional[RetryPolicy] = None,
    now: Optional[datetime] = None
) -> dict:
    """
    Main function to collect stale branches and send Slack notifications.

    Args:
        config: Run configuration
        gh: GitHub client (created from config when omitted)
        policy: Retry policy (built from config when omitted)
        now: Reference time (defaults to the current UTC time)

    Returns:
        Summary of the run
    """
    policy = policy or RetryPolicy(max_attempts=config.max_attempts)
    gh = gh or create_github_client(config)

    repo = call_with_retry(
        lambda: gh.get_repo(config.repository),
        policy,
        f"Fetching repository {config.repository}"
    )

    branches = list_branches(repo, policy, per_page=gh.per_page)
    records = classify_branches(repo, branches, policy, config.batch_size, now)
    digest = group_stale_branches(records, config.days_before_stale)

    summary = notify_authors(config, digest, policy)
    summary['total_branches'] = len(branches)
    summary['classified_branches'] = len(records)
    summary['total_stale_branches'] = sum(len(r) for r in digest.values())
    return summary


def report_failure(message: str, environ: Optional[Mapping[str, str]] = None) -> None:
    """Log a run failure, also as a workflow error annotation inside GitHub Actions."""
    env = os.environ if environ is None else environ
    logger.error(message)
    if env.get('GITHUB_ACTIONS') == 'true':
        print(f"::error::{message}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Notify branch authors on Slack about stale branches in a GitHub repository.'
    )
    parser.add_argument(
        '-c', '--config',
        default=None,
        help='Optional path to a YAML configuration file'
    )
    parser.add_argument(
        '--days-before-stale',
        type=int,
        default=None,
        help='Number of days without commits after which a branch is stale'
    )
    parser.add_argument(
        '--slack-webhook-url',
        default=None,
        help='Slack incoming webhook URL'
    )
    parser.add_argument(
        '--repository',
        default=None,
        help='Repository in owner/repo format (default: $GITHUB_REPOSITORY)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log the Slack messages instead of posting them'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the script."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args)
    except FileNotFoundError:
        report_failure(f"Configuration file not found: {args.config}")
        return 1
    except OSError as e:
        report_failure(f"Could not read configuration file {args.config}: {e}")
        return 1
    except yaml.YAMLError as e:
        report_failure(f"Invalid YAML in configuration file: {e}")
        return 1
    except ConfigurationError as e:
        report_failure(f"Configuration error: {e}")
        return 1

    try:
        summary = notify_stale_branches(config)
    except Exception as e:
        report_failure(str(e))
        return 1

    logger.info("=" * 50)
    logger.info("Stale Branch Notification Summary")
    logger.info("=" * 50)
    logger.info(f"Branches checked: {summary['total_branches']}")
    logger.info(f"Total stale branches found: {summary['total_stale_branches']}")
    logger.info(f"Messages sent: {summary['messages_sent']}")
    logger.info(f"Messages failed: {summary['messages_failed']}")
    if summary['recipients']:
        logger.info(f"Recipients: {', '.join(summary['recipients'])}")

    if summary['failures']:
        failed = ', '.join(f['author'] for f in summary['failures'])
        report_failure(f"Failed to notify: {failed}")
        return 1

    return 0


if __name__ == '__main__':
    exit(main())
