"""Tests for the exception hierarchy and error classification."""

from __future__ import annotations

import unittest

from askpane.exceptions import (
    AskPaneError,
    ErrorKind,
    MultimodalRejectedError,
    NotConfiguredError,
    ProviderError,
    ProviderHTTPError,
    ProviderTransportError,
    SourceUnavailableError,
    StoreError,
    classify_error,
    is_multimodal_rejection,
)


class ExceptionHierarchyTests(unittest.TestCase):
    def test_provider_errors_share_base(self) -> None:
        for cls in (ProviderTransportError, MultimodalRejectedError):
            self.assertTrue(issubclass(cls, ProviderError))
        self.assertTrue(issubclass(ProviderHTTPError, ProviderError))
        self.assertTrue(issubclass(ProviderError, AskPaneError))
        self.assertTrue(issubclass(AskPaneError, RuntimeError))

    def test_http_error_message_carries_status_and_body(self) -> None:
        exc = ProviderHTTPError(503, "overloaded")

        self.assertEqual(exc.status_code, 503)
        self.assertEqual(str(exc), "Provider streaming error (503): overloaded")


class ClassifyErrorTests(unittest.TestCase):
    def test_domain_errors_map_to_their_kind(self) -> None:
        self.assertEqual(classify_error(NotConfiguredError("x")), ErrorKind.NOT_CONFIGURED)
        self.assertEqual(
            classify_error(SourceUnavailableError("x")), ErrorKind.SOURCE_UNAVAILABLE
        )
        self.assertEqual(
            classify_error(MultimodalRejectedError("x")), ErrorKind.MULTIMODAL_REJECTED
        )

    def test_provider_messages_matching_markers_are_multimodal(self) -> None:
        self.assertEqual(
            classify_error(ProviderHTTPError(422, "image_url parts are not allowed")),
            ErrorKind.MULTIMODAL_REJECTED,
        )
        self.assertEqual(
            classify_error(ProviderTransportError("Model lacks Vision")),
            ErrorKind.MULTIMODAL_REJECTED,
        )

    def test_any_bad_request_counts_as_multimodal(self) -> None:
        # Broad on purpose: a 400 for an unrelated reason is still retried text-only.
        self.assertEqual(
            classify_error(ProviderHTTPError(400, "context length exceeded")),
            ErrorKind.MULTIMODAL_REJECTED,
        )

    def test_everything_else_is_transport(self) -> None:
        self.assertEqual(
            classify_error(ProviderTransportError("connection reset")),
            ErrorKind.TRANSPORT_ERROR,
        )
        self.assertEqual(classify_error(StoreError("disk")), ErrorKind.TRANSPORT_ERROR)
        self.assertEqual(classify_error(KeyError("x")), ErrorKind.TRANSPORT_ERROR)
        self.assertEqual(
            classify_error(RuntimeError("image decoder crashed")),
            ErrorKind.TRANSPORT_ERROR,
        )

    def test_marker_match_is_case_insensitive(self) -> None:
        self.assertTrue(is_multimodal_rejection("MULTIMODAL input NOT SUPPORTED"))
        self.assertFalse(is_multimodal_rejection(""))
        self.assertFalse(is_multimodal_rejection("rate limited"))


if __name__ == "__main__":
    unittest.main()
