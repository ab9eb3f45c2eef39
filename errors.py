"""알람 엔진에서 사용하는 예외 클래스 모음."""


class ValidationError(ValueError):
    """잘못된 알람 후보 데이터. 저장소에 들어가기 전에 거부됩니다."""


class PersistenceError(Exception):
    """영구 저장소 읽기/쓰기 실패. 저장소 내부에서 복구되며 밖으로 전파되지 않습니다."""


class ResourceError(Exception):
    """사운드/진동/프롬프트 시작 또는 정지 실패. 로그만 남기고 세션은 Idle로 전환됩니다."""
