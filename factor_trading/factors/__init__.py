"""
팩터 모듈.

[ 팩터 등록 방식 ]
    @register("팩터이름") 데코레이터를 붙이면 FACTOR_REGISTRY에 자동 등록.
    FactorConfig.name만으로 팩터 클래스를 찾아 생성할 수 있다.

[ 새 팩터 추가 방법 ]
    1. 이 디렉토리에 새 .py 파일 생성
    2. BaseFactor를 상속받는 클래스 작성 (validate_params, _evaluate 구현)
    3. @register("이름") 데코레이터 추가
    4. config.yaml의 strategy.factors에 name을 해당 이름으로 추가
    → 끝. 엔진 수정 불필요.
"""

from importlib import import_module
from pathlib import Path

from factor_trading.core.factor import BaseFactor, FactorConfig

# 팩터 이름 → 팩터 클래스 매핑
FACTOR_REGISTRY: dict[str, type[BaseFactor]] = {}


def register(name: str):
    """팩터 클래스를 FACTOR_REGISTRY에 등록하는 데코레이터."""
    def decorator(cls: type[BaseFactor]):
        FACTOR_REGISTRY[name] = cls
        return cls
    return decorator


def create_factor(config: FactorConfig) -> BaseFactor:
    """설정으로 팩터 인스턴스를 생성.

    Raises:
        ValueError: 등록되지 않은 팩터 이름
        FactorConfigError: 파라미터 검증 실패
    """
    if config.name not in FACTOR_REGISTRY:
        available = ", ".join(sorted(FACTOR_REGISTRY.keys()))
        raise ValueError(f"알 수 없는 팩터: '{config.name}'. 사용 가능: {available}")
    return FACTOR_REGISTRY[config.name](config)


def list_factors() -> list[str]:
    """등록된 팩터 이름 목록 반환."""
    return sorted(FACTOR_REGISTRY.keys())


def _auto_discover():
    """이 디렉토리의 모든 팩터 모듈을 자동 임포트하여 @register가 실행되게 한다."""
    factors_dir = Path(__file__).parent
    for py_file in factors_dir.glob("*.py"):
        if py_file.name.startswith("_"):
            continue
        import_module(f"factor_trading.factors.{py_file.stem}")


# 모듈 로드 시 자동 탐색
_auto_discover()
