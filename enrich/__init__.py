# Request classification used when recording scans.
# Both helpers are best-effort: they never raise into the redirect path.
from .device import classify_user_agent
from .geo import GeoEnricher, is_private_ip
