from __future__ import annotations

from typing import Any


class PassGenerationError(Exception):
    """
    Base class for every failure of the pass pipeline.

    `kind` is the stable name logged server-side; `state` is filled in by the
    generator with the pipeline state the failure happened in.
    """

    kind = "pass_generation_error"
    client_error = False

    def __init__(self, message: str, *, state: Any = None) -> None:
        super().__init__(message)
        self.state = state


class RequestInvalid(PassGenerationError):
    kind = "request_invalid"
    client_error = True


class TemplateMissing(PassGenerationError):
    kind = "template_missing"


class TemplateInvalid(TemplateMissing):
    kind = "template_invalid"


class CredentialUnavailable(PassGenerationError):
    """
    No credential source is fully populated.

    `missing` maps source name -> list of material names it lacks.
    """

    kind = "credential_unavailable"

    def __init__(self, missing: dict[str, list[str]], *, state: Any = None) -> None:
        parts = [f"{source}: missing {', '.join(names)}" for source, names in missing.items()]
        super().__init__("No complete signing credentials found (" + "; ".join(parts) + ")", state=state)
        self.missing = missing


class SigningFailed(PassGenerationError):
    kind = "signing_failed"


class MalformedCredential(SigningFailed):
    kind = "malformed_credential"


class KeyCertificateMismatch(SigningFailed):
    kind = "key_certificate_mismatch"


class UnsupportedKeyAlgorithm(SigningFailed):
    kind = "unsupported_key_algorithm"


class StagingIOFailure(PassGenerationError):
    kind = "staging_io_failure"


class ArchiveLayoutError(StagingIOFailure):
    kind = "archive_layout_error"
