BUILD_DATE_FORMAT = '%Y-%m-%d'
MANIFEST_PLACEHOLDER = '$IMAGE_TAG'
VERSION_ARTIFACT = 'version.txt'
MASK = '****'
RUN_COUNTER_FILE = 'run-number'
