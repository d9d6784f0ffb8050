"""이 파일은 .py 모듈 실행 진입점으로 python -m sysmaint를 지원합니다."""

from sysmaint.cli import main

raise SystemExit(main())
