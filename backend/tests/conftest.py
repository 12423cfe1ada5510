import os
import sys
from pathlib import Path


# Keep tests deterministic and local-only.
os.environ["QSNAP_SKIP_DOTENV"] = "1"
os.environ["QSNAP_STORAGE_BACKEND"] = "memory"
os.environ["QSNAP_STORAGE_QUOTA_BYTES"] = "0"
os.environ["QSNAP_MOCK_DELAY_MS"] = "0"
os.environ["QSNAP_AI_MAX_RETRIES"] = "3"
os.environ["QSNAP_COMPRESS_ON_SAVE"] = "0"
os.environ["QSNAP_DEFAULT_GRADE_LEVEL"] = "middle"
os.environ["DASHSCOPE_API_KEY"] = ""

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
