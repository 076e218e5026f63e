from __future__ import annotations
import os

WORKFLOW = os.environ.get("GATERUNNER_WORKFLOW")
DATABASE_URL = os.environ.get("GATERUNNER_DATABASE_URL")
SOURCE_DIR = os.environ.get("GATERUNNER_SOURCE_DIR", ".")
WORK_DIR = os.environ.get("GATERUNNER_WORK_DIR", ".gaterunner/work")
MAX_WORKERS = int(os.environ["GATERUNNER_MAX_WORKERS"]) if os.environ.get("GATERUNNER_MAX_WORKERS") else None
