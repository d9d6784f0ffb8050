"""이 파일은 .py 최상위 패키지 초기화 모듈입니다."""

__version__ = "0.1.0"
