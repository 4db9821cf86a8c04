"""
Page navigation with anti-automation challenge handling.

NavigationController loads a URL through a BrowserDriver, detects a challenge
page from title and page-source signals, makes one best-effort attempt to
solve it, then waits for it to clear while keeping the page from looking idle.
Attempts are retried with backoff according to a RetryPolicy.
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional, Tuple

from .base import ChallengeState, Colors, FailureKind, NavigationResult
from .crawlers.driver import (
    BrowserDriver,
    BrowserUnavailableError,
    DriverError,
    SCROLL_BY,
    SCROLL_TO_FRACTION,
    SCROLL_TO_TOP,
    SOLVE_CHALLENGE,
)
from .retry import RetryPolicy, Stopwatch

logger = logging.getLogger(__name__)

CHALLENGE_TITLES = (
    'just a moment',
    'checking your browser',
    'attention required',
    'security check',
)

CHALLENGE_MARKERS = (
    'cf-browser-verification',
    'cf_chl_opt',
    'challenge-platform',
    'verify you are human',
    'turnstile',
    'challenges.cloudflare.com',
)

MIN_LOADED_TITLE_LENGTH = 5


def classify_page(title: str, html: str) -> ChallengeState:
    """Classify a loaded page as a challenge page (DETECTED) or not (NONE)."""
    title = (title or '').lower()
    if any(marker in title for marker in CHALLENGE_TITLES):
        return ChallengeState.DETECTED
    html = (html or '').lower()
    if any(marker in html for marker in CHALLENGE_MARKERS):
        return ChallengeState.DETECTED
    return ChallengeState.NONE


def is_challenge_title(title: str) -> bool:
    title = (title or '').lower()
    return any(marker in title for marker in CHALLENGE_TITLES)


def is_page_loaded(title: str, html: str) -> bool:
    """A page is usable once it carries a real title and no challenge signal."""
    if classify_page(title, html) is not ChallengeState.NONE:
        return False
    return len((title or '').strip()) > MIN_LOADED_TITLE_LENGTH


class NavigationController:
    """
    Drives one browser session through challenge-gated navigations.

    The controller counts successful navigations since the last challenge;
    while that count is non-zero every navigation is preceded by a random
    delay from ``navigation_delay``.
    """

    def __init__(
        self,
        driver: BrowserDriver,
        retry_policy: Optional[RetryPolicy] = None,
        challenge_policy: Optional[RetryPolicy] = None,
        navigation_delay: Tuple[float, float] = (5.0, 10.0),
        settle_delay: Tuple[float, float] = (2.0, 4.0),
        solve_settle: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        log: Optional[logging.Logger] = None,
    ):
        """
        Args:
            driver: Browser session, used sequentially
            retry_policy: Attempt budget and backoff between navigation attempts
            challenge_policy: Poll interval and ceiling of the challenge wait
            navigation_delay: Pre-navigation delay range in seconds
            settle_delay: Pause after issuing a navigation before inspecting the page
            solve_settle: Pause after a successful solve click
        """
        self.driver = driver
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, backoff_range=(5.0, 10.0))
        self.challenge_policy = challenge_policy or RetryPolicy(max_attempts=1, poll_interval=1.0, ceiling=90.0)
        self.navigation_delay = navigation_delay
        self.settle_delay = settle_delay
        self.solve_settle = solve_settle
        self.sleep = sleep
        self.clock = clock
        self.rng = rng or random.Random()
        self.logger = log or logger
        self.successes_since_challenge = 0
        self.challenge_state = ChallengeState.NONE

    # ============================================================
    # NAVIGATION
    # ============================================================

    async def navigate_with_retry(self, url: str, max_retries: Optional[int] = None) -> NavigationResult:
        """
        Load ``url``, clearing a challenge page if one appears.

        Args:
            url: Absolute URL
            max_retries: Attempt budget (>= 1); defaults to the retry policy's

        Returns:
            NavigationResult; failure is always NAVIGATION_BLOCKED

        Raises:
            BrowserUnavailableError: If the browser is gone
        """
        policy = self.retry_policy
        if max_retries is not None:
            if max_retries < 1:
                raise ValueError("max_retries must be >= 1")
            policy = policy.with_attempts(max_retries)

        watch = Stopwatch(self.clock)
        encountered = False
        attempt = 0

        for attempt in policy.attempts():
            self.logger.info(f"Loading: {url[:80]} (attempt {attempt}/{policy.max_attempts})")

            if self.successes_since_challenge > 0:
                delay = self.rng.uniform(*self.navigation_delay)
                self.logger.debug(f"Waiting {delay:.1f}s before loading")
                await self.sleep(delay)

            if attempt > 1 or self.successes_since_challenge > 0:
                await self.idle_interaction()

            backoff = policy.backoff(attempt)
            if backoff > 0:
                self.logger.info(f"Retry delay: {backoff:.1f}s")
                await self.sleep(backoff)

            try:
                await self.driver.navigate(url)
            except BrowserUnavailableError:
                raise
            except DriverError as e:
                self.logger.warning(f"Navigation error on attempt {attempt}: {e}")
                continue

            await self.sleep(self.rng.uniform(*self.settle_delay))

            state, seen = await self.wait_for_challenge()
            encountered = encountered or seen

            if state in (ChallengeState.NONE, ChallengeState.PASSED):
                if state is ChallengeState.PASSED:
                    self.successes_since_challenge = 0
                self.successes_since_challenge += 1
                return NavigationResult(
                    success=True,
                    challenge_encountered=encountered,
                    elapsed_seconds=watch.elapsed,
                    attempts=attempt,
                )

            self.logger.warning(
                f"{Colors.yellow('Blocked')} on attempt {attempt}/{policy.max_attempts}: challenge did not clear"
            )

        return NavigationResult(
            success=False,
            challenge_encountered=encountered,
            elapsed_seconds=watch.elapsed,
            failure_kind=FailureKind.NAVIGATION_BLOCKED,
            attempts=attempt,
        )

    # ============================================================
    # CHALLENGE WAIT
    # ============================================================

    async def read_state(self) -> Tuple[str, str]:
        """Current title and page source; empty strings while the page is mid-load."""
        try:
            title = await self.driver.read_title() or ''
            html = await self.driver.read_page_source() or ''
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.debug(f"Page state unavailable: {e}")
            return '', ''
        return title, html

    async def wait_for_challenge(self) -> Tuple[ChallengeState, bool]:
        """
        Poll the page until it is loaded or the challenge ceiling passes.

        Returns:
            (final state, whether a challenge was seen). The state is NONE when
            the page loaded without a challenge, PASSED when a challenge
            cleared, TIMED_OUT otherwise. ``challenge_state`` follows the wait
            and reads SOLVING while the solve click runs.
        """
        policy = self.challenge_policy
        watch = Stopwatch(self.clock)
        encountered = False
        solve_attempted = False
        self.challenge_state = ChallengeState.NONE

        while not policy.expired(watch.started, watch.now()):
            title, html = await self.read_state()
            state = classify_page(title, html)

            if state is ChallengeState.DETECTED:
                if not encountered:
                    self.logger.warning(f"{Colors.yellow('Challenge detected')} - waiting for it to clear")
                encountered = True
                self.challenge_state = ChallengeState.DETECTED

                if not solve_attempted:
                    solve_attempted = True
                    self.challenge_state = ChallengeState.SOLVING
                    solved = await self.try_solve()
                    self.challenge_state = ChallengeState.DETECTED
                    if solved:
                        await self.sleep(self.solve_settle)
                        continue
                    self.logger.info("Could not solve automatically - complete the check in the browser window")

                await self.idle_interaction()
                await self.sleep(policy.poll_interval)
                continue

            if is_page_loaded(title, html):
                self.challenge_state = ChallengeState.PASSED if encountered else ChallengeState.NONE
                if encountered:
                    self.logger.info(f"{Colors.green('Challenge passed')} (took {watch.elapsed:.0f}s)")
                return self.challenge_state, encountered

            await self.sleep(policy.poll_interval / 2)

        self.logger.warning(f"{Colors.red('Challenge timeout')} after {watch.elapsed:.0f}s")
        self.challenge_state = ChallengeState.TIMED_OUT
        return ChallengeState.TIMED_OUT, encountered

    async def try_solve(self) -> bool:
        """One best-effort click on the challenge checkbox."""
        self.logger.info("Attempting to solve challenge...")
        try:
            clicked = await self.driver.execute_script(SOLVE_CHALLENGE)
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.debug(f"Challenge click failed: {e}")
            return False
        if clicked:
            self.logger.info("Clicked challenge element")
        return bool(clicked)

    async def idle_interaction(self):
        """Small pointer movements and a scroll so the page does not look idle."""
        try:
            for _ in range(2):
                await self.driver.move_mouse(self.rng.randint(-30, 30), self.rng.randint(-30, 30))
                await self.sleep(self.rng.uniform(0.1, 0.3))
            amount = self.rng.randint(100, 400)
            await self.driver.execute_script(SCROLL_BY, amount)
            await self.sleep(self.rng.uniform(0.3, 0.6))
            await self.driver.execute_script(SCROLL_BY, -(amount // 2))
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.debug(f"Idle interaction skipped: {e}")

    async def lazy_scroll(self, steps: int = 5):
        """Scroll down in steps to trigger lazy-loaded content, then back to the top."""
        try:
            for step in range(1, steps + 1):
                await self.driver.execute_script(SCROLL_TO_FRACTION, step / steps)
                await self.sleep(self.rng.uniform(0.3, 0.6))
            await self.driver.execute_script(SCROLL_TO_TOP)
            await self.sleep(self.rng.uniform(0.3, 0.6))
        except BrowserUnavailableError:
            raise
        except DriverError as e:
            self.logger.debug(f"Lazy-load scroll skipped: {e}")
