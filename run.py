"""이 파일은 .py 엔트리포인트로 오케스트레이터 기본 실행을 제공합니다."""

from sysmaint.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
