import logging

from shipyard.config import config as _config

logging.basicConfig(
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    level=logging.INFO,
)
if _config.debug:
    logging.getLogger('shipyard.invoker').setLevel(logging.DEBUG)
    logging.getLogger('shipyard.credentials').setLevel(logging.DEBUG)
