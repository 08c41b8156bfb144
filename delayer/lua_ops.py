# Atomic Redis Lua script for promotion under concurrent passes.
# Appends only the members still pending in the pool, so a job raced out of
# the pool by another pass is never pushed twice.
#
# Redis does not roll back a script that fails halfway, so every write that
# can fail (LPUSH on a key of the wrong type) runs before the first ZREM.

PROMOTE_CHUNK = 1000

PROMOTE_JOBS_LUA = r"""
-- KEYS[1] = job_pool (zset)
-- KEYS[2] = ready_queue (list)
-- ARGV[1] = chunk size for batched LPUSH
-- ARGV[2..] = job ids

local job_pool = KEYS[1]
local ready_queue = KEYS[2]
local chunk = tonumber(ARGV[1])

-- 1) Read-only pass: keep the ids that are still pending
local pending = {}
for i = 2, #ARGV do
  if redis.call("ZSCORE", job_pool, ARGV[i]) then
    pending[#pending + 1] = ARGV[i]
  end
end

-- 2) Nothing left to promote: report zero effect for both operations
if #pending == 0 then
  return {0, 0, {}}
end

-- 3) Append in bounded batches; unpack() of a huge table overflows the C stack
local new_len = 0
for first = 1, #pending, chunk do
  local last = math.min(first + chunk - 1, #pending)
  new_len = redis.call("LPUSH", ready_queue, unpack(pending, first, last))
end

-- 4) Remove exactly what was appended
for first = 1, #pending, chunk do
  local last = math.min(first + chunk - 1, #pending)
  redis.call("ZREM", job_pool, unpack(pending, first, last))
end

-- {removed_count, new_len, {removed ids}}
return {#pending, new_len, pending}
"""
