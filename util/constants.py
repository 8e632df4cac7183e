# util/constants.py
class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    MATRIX = V1 + "/matrix"
    MATRIX_ANALYZE = MATRIX + "/analyze"
    MATRIX_BATCH = MATRIX + "/batch"
    MATRIX_JOBS = MATRIX + "/jobs"
    MATRIX_JOB = MATRIX_JOBS + "/{job_id}"
    MATRIX_RESULT = MATRIX + "/{asset_id}/{scenario_id}"
    SEARCH = V1 + "/search"
    SEARCH_RECOMMENDATIONS = SEARCH + "/recommendations"
    CONTEXT = V1 + "/context"
    CONTEXT_PORTFOLIO = CONTEXT + "/portfolio/{user_id}"
    CONTEXT_TREND = CONTEXT + "/trends/{category}"
