# src/photo_transcoder/core/error_handling.py

import functools
import logging
import time

from botocore.exceptions import ClientError as BotocoreClientError
from PIL import UnidentifiedImageError as PILUnidentifiedImageError

from .exceptions import DecodeError, StorageError

RETRYABLE_STORAGE_ERROR_CODES = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "InternalError",
)


def with_error_handling(func):
    """
    A decorator to wrap functions with standardized error handling.

    Errors are logged with their traceback. botocore client errors are
    re-raised as StorageError and unidentifiable images as DecodeError;
    everything else propagates unchanged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + "." + func.__name__)
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            if isinstance(e, BotocoreClientError):
                raise StorageError(f"Storage operation failed in {func.__name__}: {e}") from e
            if isinstance(e, PILUnidentifiedImageError):
                raise DecodeError(f"Failed to identify image in {func.__name__}: {e}") from e
            raise
    return wrapper


def _is_retryable(error: StorageError) -> bool:
    cause = error.__cause__
    if isinstance(cause, BotocoreClientError):
        error_code = cause.response.get("Error", {}).get("Code")
        return error_code in RETRYABLE_STORAGE_ERROR_CODES
    return False


def retry_storage_operation(max_attempts=3, initial_delay=1, backoff_factor=2):
    """
    Decorator to retry object storage operations with exponential backoff.

    Only StorageErrors caused by a throttling or transient botocore error code
    are retried; any other error is raised on the first failure.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + "." + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except StorageError as e:
                    attempts += 1
                    if not _is_retryable(e):
                        logger.error(f"Storage operation '{func.__name__}' failed with non-retryable error: {e}")
                        raise
                    if attempts >= max_attempts:
                        logger.error(
                            f"Storage operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"Storage operation '{func.__name__}' failed. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")

        # Never suppress exceptions raised inside the block
        return False

    def add_error(self, error_message, item_identifier="Unknown item"):
        """
        Report an error for a specific item within the 'with' block.

        Args:
            error_message: The error message or exception.
            item_identifier: A string identifying the item that failed (e.g., filename, key).
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")
