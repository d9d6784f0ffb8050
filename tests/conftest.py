"""이 파일은 .py 테스트 설정 모듈로 경로를 초기화하고 공용 픽스처를 제공합니다."""

import shutil
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sysmaint.core.config import DATA_DIR  # noqa: E402


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    # 패키지 기본 설정을 임시 디렉터리로 복사해 테스트마다 수정할 수 있게 한다.
    target = tmp_path / "config"
    target.mkdir()
    shutil.copy(DATA_DIR / "settings.json", target / "settings.json")
    shutil.copytree(DATA_DIR / "schemas", target / "schemas")
    shutil.copytree(DATA_DIR / "lists", target / "lists")
    return target


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "storage"
