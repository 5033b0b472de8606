"""
Data manager for fetching the question sheet and building the catalog.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

import requests

from .catalog import QuestionCatalog
from .models import LoadState


class LoadErrorKind(Enum):
    """Reasons a catalog load can fail."""
    NETWORK_FAILURE = "network_failure"
    EMPTY_CATALOG = "empty_catalog"


class LoadError(Exception):
    """Raised when the question catalog cannot be loaded."""

    def __init__(self, kind: LoadErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    @property
    def user_message(self) -> str:
        if self.kind is LoadErrorKind.EMPTY_CATALOG:
            return "❌ The question sheet was reached but contains no valid questions."
        return "❌ Could not reach the question sheet. Please try again with /reload."


class DataManager:
    """Fetches the published question sheet and keeps the current catalog."""

    DEFAULT_TIMEOUT = 15

    def __init__(
        self,
        source_url: str,
        subject_order: Sequence[str] = (),
        topic_order: Optional[Mapping[str, Sequence[str]]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize DataManager.

        Args:
            source_url: URL of the published CSV sheet
            subject_order: Preferred subject priority list
            topic_order: Preferred topic priority list per subject
            timeout: HTTP timeout in seconds
            rng: Randomness source for option shuffling
        """
        self.source_url = source_url
        self.subject_order = list(subject_order)
        self.topic_order = dict(topic_order or {})
        self.timeout = timeout
        self.rng = rng
        self.logger = logging.getLogger(__name__)

        self.catalog: Optional[QuestionCatalog] = None
        self.load_state = LoadState.IDLE
        self.last_error: Optional[LoadError] = None
        self.load_errors: List[str] = []

    async def load_catalog(self) -> QuestionCatalog:
        """
        Fetch and parse the question sheet.

        Returns:
            The freshly built catalog

        Raises:
            LoadError: If the sheet cannot be fetched or holds no valid questions
        """
        self.load_state = LoadState.LOADING
        self.last_error = None
        self.logger.info(f"Loading question catalog from {self.source_url}")

        try:
            text = await asyncio.to_thread(self._fetch_source)
            catalog = self.build_catalog(text)
        except LoadError as e:
            self.last_error = e
            self.load_errors.append(str(e))
            if e.kind is LoadErrorKind.EMPTY_CATALOG:
                self.load_state = LoadState.EMPTY
                self.logger.warning(f"Question catalog is empty: {e}")
            else:
                self.load_state = LoadState.FAILED
                self.logger.error(f"Question catalog load failed: {e}")
            raise

        self.catalog = catalog
        self.load_state = LoadState.LOADED
        self.logger.info(
            f"Loaded {len(catalog)} questions across {len(catalog.subjects)} subjects"
        )
        return catalog

    async def retry(self) -> QuestionCatalog:
        """Re-run the identical fetch-and-parse pipeline."""
        self.logger.info("Retrying question catalog load")
        return await self.load_catalog()

    def _fetch_source(self) -> str:
        """
        Fetch the raw sheet text.

        Raises:
            LoadError: On connection errors or non-success status codes
        """
        try:
            response = requests.get(self.source_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise LoadError(
                LoadErrorKind.NETWORK_FAILURE,
                f"Question source returned HTTP {e.response.status_code if e.response is not None else '?'}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise LoadError(LoadErrorKind.NETWORK_FAILURE, f"Question source unreachable: {e}") from e

        response.encoding = response.encoding or 'utf-8'
        return response.text

    def build_catalog(self, text: str) -> QuestionCatalog:
        """
        Build a catalog from raw sheet text; the first line is a header.

        Raises:
            LoadError: If no valid question remains
        """
        rows = text.splitlines()[1:]
        catalog = QuestionCatalog.build(
            rows,
            subject_order=self.subject_order,
            topic_order=self.topic_order,
            rng=self.rng
        )
        if catalog.is_empty():
            raise LoadError(
                LoadErrorKind.EMPTY_CATALOG,
                f"No valid questions found in {len(rows)} rows"
            )
        return catalog

    def is_loading(self) -> bool:
        return self.load_state is LoadState.LOADING

    def has_catalog(self) -> bool:
        return self.catalog is not None

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered by previous load attempts.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def get_loading_summary(self) -> Dict[str, object]:
        """
        Get a summary of the loading state.

        Returns:
            Dictionary with loading statistics and status
        """
        summary = {
            'state': self.load_state.value,
            'source_url': self.source_url,
            'has_errors': bool(self.load_errors),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'last_error_kind': self.last_error.kind.value if self.last_error else None,
            'total_questions': 0,
            'subjects': [],
        }
        if self.catalog is not None:
            summary.update(self.catalog.summary())
        return summary
