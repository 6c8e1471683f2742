TEMP_PATH = "./assets/temp"
RESULT_PATH = "./assets/result"
LOG_PATH = "./assets/log"

LOGGING_LEVEL: str = "INFO"

# reduced costs closer to zero than this are equality edges
EQUALITY_TOL: float = 1e-9

# IPFP defaults
IPFP_MAX_ITER: int = 100
IPFP_EPSILON: float = 1e-3
IPFP_SMALL_R: float = 1e-4
IPFP_SMALL_BETA: float = 1e-5

# multistart: number of initial mappings, and workers (1 = sequential, -1 = all cpus)
DEFAULT_K: int = 10
N_JOBS: int = 1

DEFAULT_COSTS: dict[str, float] = dict(cns=1.0, cnd=3.0, cni=3.0, ces=1.0, ced=3.0, cei=3.0)
