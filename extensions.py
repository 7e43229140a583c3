from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Blueprint 需要用 @limiter.limit,所以 limiter 先在這裡建立,
# 在 create_app() 裡才 init_app 綁到 app 上 (storage 由 RATELIMIT_STORAGE_URI 決定)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "200 per hour"],
    strategy="fixed-window"
)
