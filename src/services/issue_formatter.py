"""Issue title/body/label rendering for feedback records.

Everything here is pure: records in, strings out.
"""

from models.feedback import FeedbackRecord, GistUpload, IssueDraft

TITLE_PREFIX = "[Feedback]"
TITLE_MAX_CHARS = 80
BASE_LABELS = ["feedback", "user-reported"]
STATUS_LABEL = "needs-triage"

# GitHub rejects issue bodies longer than this
MAX_BODY_LENGTH = 65536

NOT_PROVIDED = "Not provided"
UNKNOWN = "Unknown"
NO_DESCRIPTION = "_No description provided._"
SCREENSHOT_UNAVAILABLE = (
    "_A screenshot was submitted with this feedback but could not be attached._"
)
SCREENSHOT_TOO_LARGE = "_The screenshot is too large to embed in this issue._"


def build_title(record: FeedbackRecord) -> str:
    """First 80 characters of the feedback text, with an ellipsis if cut.

    Whitespace runs (including newlines) are collapsed to single spaces
    before the cut, so the length limit applies to the collapsed text, not
    the raw text.
    """
    text = " ".join((record.text or "").split())
    if not text:
        return f"{TITLE_PREFIX} User feedback {record.feedback_id}"
    if len(text) > TITLE_MAX_CHARS:
        text = text[:TITLE_MAX_CHARS] + "..."
    return f"{TITLE_PREFIX} {text}"


def platform_label(platform: str | None) -> str | None:
    """Map a platform string to a label.

    Only "ios" is recognised; any other non-empty platform is treated as
    Android.
    """
    if not platform or not platform.strip():
        return None
    return "ios" if "ios" in platform.lower() else "android"


def build_labels(record: FeedbackRecord) -> list[str]:
    labels = list(BASE_LABELS)
    label = platform_label(record.platform)
    if label:
        labels.append(label)
    labels.append(STATUS_LABEL)
    return labels


def format_timestamp(record: FeedbackRecord) -> str:
    submitted = record.submitted_at
    if submitted is None:
        return record.timestamp or UNKNOWN
    return submitted.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def _format_version(record: FeedbackRecord) -> str:
    if not record.app_version:
        return UNKNOWN
    if record.build_number:
        return f"{record.app_version} (Build {record.build_number})"
    return record.app_version


def _format_device_info(device_info: dict[str, str] | None) -> str:
    if not device_info:
        return f"- {NOT_PROVIDED}"
    return "\n".join(f"- **{key}:** {value}" for key, value in device_info.items())


def _format_screenshot(
    attachment: GistUpload | None,
    screenshot_expected: bool,
    inline_image: str | None = None,
) -> str | None:
    if inline_image is not None:
        return f"### Screenshot\n\n![Screenshot]({inline_image})"
    if attachment is not None:
        # Gist files are served as text/plain
        return (
            "### Screenshot\n\n"
            f"{SCREENSHOT_TOO_LARGE} [View screenshot gist]({attachment.url}) "
            f"([raw data URL]({attachment.raw_url}))"
        )
    if screenshot_expected:
        return f"### Screenshot\n\n{SCREENSHOT_UNAVAILABLE}"
    return None


def _render_body(record: FeedbackRecord, screenshot: str | None) -> str:
    sections = [
        "## User Feedback",
        "\n".join(
            [
                f"**Feedback ID:** `{record.feedback_id}`",
                f"**Submitted:** {format_timestamp(record)}",
                f"**Email:** {record.user_email or NOT_PROVIDED}",
                f"**App Version:** {_format_version(record)}",
                f"**Platform:** {record.platform or UNKNOWN}",
            ]
        ),
        "### Device Information\n\n" + _format_device_info(record.device_info),
        "### Description\n\n" + ((record.text or "").strip() or NO_DESCRIPTION),
    ]
    if screenshot:
        sections.append(screenshot)

    sections.append("---\n_Synced automatically from the in-app feedback form._")
    return "\n\n".join(sections)


def fits_inline(record: FeedbackRecord, data_url: str) -> bool:
    """True if the body with ``data_url`` embedded stays within MAX_BODY_LENGTH."""
    body = _render_body(record, _format_screenshot(None, False, data_url))
    return len(body) <= MAX_BODY_LENGTH


def build_body(
    record: FeedbackRecord,
    attachment: GistUpload | None = None,
    screenshot_expected: bool = False,
    inline_image: str | None = None,
) -> str:
    """Render the Markdown issue body.

    Args:
        record: Feedback record
        attachment: Gist holding a screenshot too large to embed
        screenshot_expected: True when the record referenced a screenshot
            that could not be reassembled
        inline_image: Screenshot data URL to embed directly
    """
    body = _render_body(
        record, _format_screenshot(attachment, screenshot_expected, inline_image)
    )
    if len(body) > MAX_BODY_LENGTH:
        suffix = "\n\n_[truncated]_"
        body = body[: MAX_BODY_LENGTH - len(suffix)] + suffix
    return body


def format_issue(
    record: FeedbackRecord,
    attachment: GistUpload | None = None,
    screenshot_expected: bool = False,
    inline_image: str | None = None,
) -> IssueDraft:
    return IssueDraft(
        title=build_title(record),
        body=build_body(record, attachment, screenshot_expected, inline_image),
        labels=build_labels(record),
    )
