# retry.py
import asyncio
import http.client
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

import httplib2
from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

INSUFFICIENT_PERMISSIONS_MESSAGE = (
    "The user does not have sufficient permissions for this file."
)

# Exceptions raised by the transport itself rather than by the API.
TRANSPORT_ERRORS = (
    OSError,
    http.client.HTTPException,
    httplib2.HttpLib2Error,
    TransportError,
)


class wait_jittered_exponential(wait_exponential):
    """Like wait_exponential, but scales the uncapped delay by a random factor in [1, 2)."""

    def __call__(self, retry_state) -> float:
        try:
            exp = self.exp_base ** (retry_state.attempt_number - 1)
            result = self.multiplier * exp * random.uniform(1, 2)
        except OverflowError:
            return self.max
        return max(max(0, self.min), min(result, self.max))


class RetryPolicy(BaseModel):
    """
    Bounded exponential backoff.

    Delay after failed attempt n is ``min(max_delay, base_delay * multiplier ** (n - 1))``.
    With jitter the uncapped delay is scaled by a random factor in [1, 2) before capping.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(5, ge=1)
    base_delay: float = Field(1.0, ge=0.0)
    multiplier: float = Field(3.0, ge=1.0)
    max_delay: float = Field(60.0, ge=0.0)
    jitter: bool = True

    def wait_strategy(self) -> wait_exponential:
        wait_cls = wait_jittered_exponential if self.jitter else wait_exponential
        return wait_cls(
            multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay
        )


class ErrorInfo(BaseModel):
    """What the retry loop knows about a failed attempt."""

    model_config = ConfigDict(frozen=True)

    code: Union[int, str, None] = None
    message: str = ""
    retryable: bool = False

    @classmethod
    def from_exception(cls, error: BaseException, retryable: bool = False) -> "ErrorInfo":
        code, message = describe_error(error)
        return cls(code=code, message=message, retryable=retryable)


class AttemptState(BaseModel):
    attempt_number: int = 0
    last_error: Optional[ErrorInfo] = None


class Outcome(str, Enum):
    RETRY = "retry"
    FATAL = "fatal"
    BENIGN = "benign"


class RetryStatus(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def describe_error(error: BaseException) -> Tuple[Union[int, str, None], str]:
    """Returns the (code, message) pair of an API or transport error."""
    if isinstance(error, HttpError):
        return error.resp.status, str(error.reason)
    return type(error).__name__, str(error)


def is_remote_error(error: BaseException) -> bool:
    return isinstance(error, (HttpError,) + TRANSPORT_ERRORS)


class ErrorRule(BaseModel):
    """Matches an HTTP status, optionally together with an exact API message."""

    model_config = ConfigDict(frozen=True)

    status: int
    message: Optional[str] = None

    def matches(self, code, message: str) -> bool:
        if code != self.status:
            return False
        return self.message is None or message.strip() == self.message


class ErrorPolicy(BaseModel):
    """
    Per-operation classification of failed attempts.

    Fatal rules are checked first, then benign rules. Any other API or transport
    error is retried; anything else (a bug, a revoked token) is fatal.
    """

    model_config = ConfigDict(frozen=True)

    fatal: Tuple[ErrorRule, ...] = ()
    benign: Tuple[ErrorRule, ...] = ()

    def classify(self, error: BaseException) -> Outcome:
        if not is_remote_error(error):
            return Outcome.FATAL
        code, message = describe_error(error)
        if any(rule.matches(code, message) for rule in self.fatal):
            return Outcome.FATAL
        if any(rule.matches(code, message) for rule in self.benign):
            return Outcome.BENIGN
        return Outcome.RETRY

    def extend(self, fatal=(), benign=()) -> "ErrorPolicy":
        return ErrorPolicy(
            fatal=self.fatal + tuple(fatal), benign=self.benign + tuple(benign)
        )


PERMISSION_DENIED = ErrorRule(status=403, message=INSUFFICIENT_PERMISSIONS_MESSAGE)
NOT_FOUND = ErrorRule(status=404)

# A denied permission never heals on its own; rate limits are also 403 but carry other messages.
DEFAULT_ERRORS = ErrorPolicy(fatal=(PERMISSION_DENIED,))
# Update and delete of something already gone: nothing to do.
UPDATE_ERRORS = DEFAULT_ERRORS.extend(benign=(NOT_FOUND,))


class RetryOperation:
    """
    Runs one remote call until it succeeds, fails fatally or runs out of attempts.

    ATTEMPTING -> SUCCEEDED
    ATTEMPTING -> RETRYING -> ATTEMPTING
    ATTEMPTING -> FAILED

    The error of the last attempt is re-raised unchanged. A benign error ends the
    loop as a success returning None.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        errors: ErrorPolicy = DEFAULT_ERRORS,
        label: str = "remote call",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy
        self.errors = errors
        self.label = label
        self._sleep = sleep
        self.status: Optional[RetryStatus] = None
        self.attempts = 0
        self.state: Optional[AttemptState] = None

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self.policy.wait_strategy(),
            retry=retry_if_exception(lambda e: self.errors.classify(e) is Outcome.RETRY),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def run(self, attempt_fn: Callable[[], Awaitable[Any]]) -> Any:
        if self.status is not None:
            raise RuntimeError("A RetryOperation can only be run once.")

        self.state = AttemptState()
        try:
            result = await self._retrying()(self._attempt, attempt_fn)
        except Exception as e:
            self.status = RetryStatus.FAILED
            self._log_failure(e)
            raise
        finally:
            self.state = None
        self.status = RetryStatus.SUCCEEDED
        return result

    async def _attempt(self, attempt_fn: Callable[[], Awaitable[Any]]) -> Any:
        self.state.attempt_number += 1
        self.attempts = self.state.attempt_number
        self.status = RetryStatus.ATTEMPTING
        try:
            return await attempt_fn()
        except Exception as e:
            outcome = self.errors.classify(e)
            self.state.last_error = ErrorInfo.from_exception(
                e, retryable=outcome is Outcome.RETRY
            )
            if outcome is not Outcome.BENIGN:
                raise
            info = self.state.last_error
            logging.warning(
                f"Error {info.code} on {self.label} treated as success: {info.message}"
            )
            return None

    def _log_retry(self, retry_state):
        self.status = RetryStatus.RETRYING
        info = self.state.last_error
        logging.warning(
            f"Warning, error {info.code} occurred on {self.label}, "
            f"retry {retry_state.attempt_number}/{self.policy.max_attempts - 1}: {info.message}"
        )

    def _log_failure(self, error: Exception):
        info = ErrorInfo.from_exception(error)
        if self.errors.classify(error) is Outcome.RETRY:
            logging.error(
                f"Giving up on {self.label} after {self.attempts} attempts. "
                f"Last error {info.code}: {info.message}"
            )
        else:
            logging.error(
                f"Error {info.code} on {self.label} is not retryable: {info.message}"
            )


async def execute_with_retry(
    policy: RetryPolicy,
    attempt_fn: Callable[[], Awaitable[Any]],
    errors: ErrorPolicy = DEFAULT_ERRORS,
    label: str = "remote call",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """Shortcut for ``RetryOperation(policy, errors, label, sleep).run(attempt_fn)``."""
    return await RetryOperation(policy, errors, label, sleep).run(attempt_fn)
