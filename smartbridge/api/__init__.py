"""HTTP surface: routers, rate limiter and error mapping."""
