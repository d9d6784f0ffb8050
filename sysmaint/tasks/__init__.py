"""이 파일은 .py 태스크 패키지 초기화 모듈입니다. 등록은 data/tasks.yml에서 합니다."""
