from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from qsnap.api.dependencies import get_capture_service, get_extractor  # noqa: E402
from qsnap.core.config import get_settings  # noqa: E402
from qsnap.core.logging import configure_logging  # noqa: E402
from qsnap.domain.errors import QsnapError  # noqa: E402
from qsnap.domain.models import GRADE_LEVELS, ImageUpload, confidence_band  # noqa: E402
from qsnap.imaging.encoding import compress_image, encode_image  # noqa: E402
from qsnap.imaging.validation import validate_image  # noqa: E402


def _guess_content_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


async def _run(args: argparse.Namespace) -> dict:
    path = Path(args.image)
    if not path.is_file():
        raise FileNotFoundError(f"Image not found: {path}")
    upload = ImageUpload.from_path(path, content_type=args.content_type or _guess_content_type(path))

    if args.save:
        service = get_capture_service()
        session = await service.start(upload, args.grade)
        out: dict = {"sessionId": session.session_id, "attempts": session.attempts, "status": session.status}
        if session.error_kind is not None:
            out["error"] = session.error_kind
            out["message"] = session.error_message
        if session.candidate is not None:
            out["result"] = session.candidate.model_dump()
        if session.candidate is not None and not session.candidate.failed:
            record = await service.confirm(session.session_id)
            out["questionId"] = record.id
        return out

    validate_image(upload)
    if args.compress:
        encoded = compress_image(upload, quality=get_settings().jpeg_quality)
    else:
        encoded = encode_image(upload)

    extractor = get_extractor()
    result = await extractor.extract(encoded, args.grade, args.max_retries)
    return {
        "provider": extractor.provider_name,
        "model": extractor.model_name,
        "encodedChars": len(encoded),
        "confidenceBand": confidence_band(result.confidence),
        "result": result.model_dump(),
    }


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Extract the first question from a homework photo using the configured AI backend.",
    )
    parser.add_argument("image", help="Path to a JPEG, PNG or WebP image")
    parser.add_argument("--grade", choices=GRADE_LEVELS, default=None, help="Education level used in the prompt")
    parser.add_argument("--content-type", default=None, help="Override the guessed MIME type")
    parser.add_argument("--max-retries", type=int, default=None)
    parser.add_argument("--compress", action="store_true", help="Downscale to 1200px JPEG before sending")
    parser.add_argument("--save", action="store_true", help="Confirm the result into the configured question store")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    args.grade = args.grade or settings.default_grade_level
    if args.max_retries is None:
        args.max_retries = settings.ai_max_retries

    try:
        output = asyncio.run(_run(args))
    except QsnapError as exc:
        print(json.dumps({"error": exc.kind, "message": exc.message}, ensure_ascii=False, indent=2))
        return 1

    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
