from __future__ import annotations

import os
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


if __name__ == "__main__":
    uvicorn.run(
        "voiceclone.backend.main:create_app",
        factory=True,
        host=os.getenv("VCS_HOST", "0.0.0.0"),
        port=int(os.getenv("VCS_PORT", "8000")),
        reload=False,
    )
