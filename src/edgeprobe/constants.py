"""Centralized constants for all modules."""

# Diagnostic and speed-test endpoints (scheme is chosen by the TLS flag)
TRACE_URL = "speed.cloudflare.com/cdn-cgi/trace"
SPEED_TEST_URL = "speed.cloudflare.com/__down?bytes=500000000"
CLIENT_IDENTIFIER = "Mozilla/5.0"

# Trace body tokens: first colo= followed later by loc=
TRACE_PATTERN = r"colo=([A-Z]+)[\s\S]*?loc=([A-Z]+)"

# Timeouts (seconds)
DIAL_TIMEOUT = 1.0
RESPONSE_TIMEOUT = 2.0
SPEED_TEST_TIMEOUT = 5.0
DOWNLOAD_TIMEOUT = 30
UPLOAD_TIMEOUT = 10

# Filters
LATENCY_THRESHOLD_MS = 300
THROUGHPUT_THRESHOLD_MBS = 3.0

# Worker widths
PROBE_WORKERS = 100
SPEED_TEST_WORKERS = 5

# Ports
MIN_PORT = 1
MAX_PORT = 65535

# Geo database
LOCATIONS_URL = "https://locations-adw.pages.dev/"
LOCATIONS_CACHE = "locations.json"

# Candidate lists
DEFAULT_CANDIDATE_LIST_URL = "https://zip.cm.edu.kg/all.txt"
STANDARD_FORMAT_SAMPLE = 10
STANDARD_FORMAT_RATIO = 0.8

# Output
OUTPUT_FILE = "ip.csv"
RESULT_COLUMNS = [
    "address",
    "port",
    "tls",
    "datacenter",
    "location",
    "region",
    "city",
    "region_localized",
    "country",
    "city_localized",
    "flag",
    "latency",
]
THROUGHPUT_COLUMN = "download_speed_mbs"

# Open file descriptors wanted for wide probe runs
TARGET_OPEN_FILES = 10000

UPLOAD_USER_AGENT = "edgeprobe/1.0"

# Location code -> city label used when a result has no localized city
CITY_LABELS = {
    "SIN": "新加坡",
    "HKG": "香港",
    "NRT": "东京",
    "ICN": "首尔",
    "BOM": "孟买",
    "DEL": "新德里",
    "SYD": "悉尼",
    "MEL": "墨尔本",
    "LHR": "伦敦",
    "CDG": "巴黎",
    "FRA": "法兰克福",
    "AMS": "阿姆斯特丹",
    "JFK": "纽约",
    "LAX": "洛杉矶",
    "SFO": "旧金山",
    "ORD": "芝加哥",
    "DFW": "达拉斯",
    "DXB": "迪拜",
    "DOH": "多哈",
    "BKK": "曼谷",
    "KUL": "吉隆坡",
    "CGK": "雅加达",
    "MNL": "马尼拉",
    "SGN": "胡志明市",
    "HAN": "河内",
    "TAI": "台北",
    "PVG": "上海",
    "PEK": "北京",
    "CAN": "广州",
    "SZX": "深圳",
    "CTU": "成都",
    "XIY": "西安",
    "KMG": "昆明",
    "KIX": "大阪",
    "NGO": "名古屋",
    "FCO": "罗马",
    "BCN": "巴塞罗那",
    "MAD": "马德里",
    "IST": "伊斯坦布尔",
    "CAI": "开罗",
    "JNB": "约翰内斯堡",
}
