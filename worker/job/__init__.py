"""잡 핸들러 모듈 (load_handlers가 하위 모듈을 모두 로드)"""
