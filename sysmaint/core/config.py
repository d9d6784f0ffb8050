"""이 파일은 .py 설정 모듈로 경로와 기본 위치를 정의합니다."""

import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parents[1]
REPO_ROOT = PACKAGE_DIR.parent
DATA_DIR = PACKAGE_DIR / "data"
# 설정 문서 디렉터리(settings.json, schemas/, lists/)는 환경 변수로 교체할 수 있다.
CONFIG_DIR = Path(os.getenv("SYSMAINT_CONFIG_DIR", str(DATA_DIR)))
SCHEMAS_DIRNAME = "schemas"
LISTS_DIRNAME = "lists"
SETTINGS_FILENAME = "settings.json"
LOCAL_SETTINGS_FILENAME = "settings.local.json"
TASKS_FILE = DATA_DIR / "tasks.yml"
TEMPLATES_DIR = DATA_DIR / "templates"
# 실행 결과가 저장되는 루트(data/, logs/, processed/, reports/).
STORAGE_ROOT = Path(os.getenv("SYSMAINT_ROOT", str(REPO_ROOT / "storage")))
DEFAULT_PROFILE = os.getenv("SYSMAINT_PROFILE")
API_PREFIX = "/api/v1"
REPORT_VERSION = "4.0"
