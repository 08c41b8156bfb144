# Redis key schema for the delayer.
# Names are shared with producers and consumers, so they must not change.

KEY_JOB_POOL = "delayer:job_pool"
PREFIX_JOB_BUCKET = "delayer:job_bucket:"
PREFIX_READY_QUEUE = "delayer:ready_queue:"

TOPIC_FIELD = "topic"


def job_pool_key() -> str:
    # Global ZSET: member = job_id, score = ready-at (unix seconds)
    return KEY_JOB_POOL


def job_bucket_key(job_id: str) -> str:
    # Hash with job metadata, at least the "topic" field
    return f"{PREFIX_JOB_BUCKET}{job_id}"


def ready_queue_key(topic: str) -> str:
    # List per topic; promoted ids are LPUSHed, consumers pop from the right
    return f"{PREFIX_READY_QUEUE}{topic}"
