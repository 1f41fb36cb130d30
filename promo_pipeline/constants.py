"""Provider constants and lookup tables for promo video generation."""

# Video synthesis provider (Seedance via Runware)
VIDEO_MODEL = "bytedance:2@2"
MUSIC_MODEL = "elevenlabs:1@1"
VIDEO_RESULT_URL_TEMPLATE = "https://vm.runware.ai/video/ws/0/vi/{video_uuid}.mp4"

MIN_VIDEO_DURATION = 1.2
MAX_VIDEO_DURATION = 12.0
MIN_PROMPT_LENGTH = 10
MAX_PROMPT_LENGTH = 2500
MIN_MUSIC_DURATION = 10
MAX_MUSIC_DURATION = 300

# (width, height) pairs accepted by the video model
SUPPORTED_RESOLUTIONS: frozenset[tuple[int, int]] = frozenset(
    {
        (864, 480),
        (736, 544),
        (640, 640),
        (544, 736),
        (480, 864),
        (416, 960),
        (960, 416),
        (1920, 1088),
        (1664, 1248),
        (1440, 1440),
        (1248, 1664),
        (1088, 1920),
        (928, 2176),
        (2176, 928),
    }
)

RESOLUTION_KEYS: dict[str, tuple[int, int]] = {
    "1x1_720": (640, 640),
    "1x1_1080": (1440, 1440),
    "3x4_720": (544, 736),
    "3x4_1080": (1248, 1664),
    "16x9_720": (864, 480),
    "16x9_1080": (1920, 1088),
    "9x16_720": (480, 864),
    "9x16_1080": (1088, 1920),
}
DEFAULT_RESOLUTION_KEY = "3x4_720"
DEFAULT_SCENE_DURATION = 3.0

# QuickClip: variants of one image generated per request
MIN_QUICKCLIP_VARIANTS = 1
MAX_QUICKCLIP_VARIANTS = 4
DEFAULT_QUICKCLIP_DURATION = 5.0

DEFAULT_MOTION_PROMPT = "Subtle cinematic camera motion bringing the product scene to life"

# Google TTS voices keyed by (language, voice_type)
TTS_VOICES: dict[tuple[str, str], tuple[str, str]] = {
    ("en", "male"): ("en-US-Neural2-D", "en-US"),
    ("en", "female"): ("en-US-Neural2-F", "en-US"),
    ("zh", "male"): ("zh-CN-Wavenet-B", "zh-CN"),
    ("zh", "female"): ("zh-CN-Wavenet-A", "zh-CN"),
}

MUSIC_STYLE_PROMPTS: dict[str, str] = {
    "calm": "calm ambient music",
    "modern": "modern upbeat music",
    "corporate": "inspiring corporate music",
    "soft": "soft gentle music",
    "energetic": "energetic upbeat music",
}

# Checked in order; first match wins
MUSIC_MOOD_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    (
        "cinematic energetic",
        (
            "jump", "bounce", "dance", "party", "celebration", "energetic", "exciting",
            "dynamic", "vibrant", "fast", "quick", "rush", "speed", "zoom",
        ),
    ),
    (
        "modern ambient",
        (
            "modern", "tech", "digital", "cyber", "futuristic", "innovation", "sleek",
            "minimal", "contemporary",
        ),
    ),
    (
        "inspiring corporate",
        ("business", "corporate", "professional", "meeting", "office", "presentation", "formal"),
    ),
    (
        "soft ambient",
        (
            "soft", "gentle", "peaceful", "calm", "serene", "relax", "quiet", "smooth",
            "flowing", "drift",
        ),
    ),
    (
        "cinematic dramatic",
        ("dramatic", "epic", "cinematic", "powerful", "intense", "grand", "majestic", "hero"),
    ),
]
DEFAULT_MUSIC_MOOD = "calm ambient"

API_PROVIDER_LABEL = "runware+ffmpeg+audio"
SCENE_TIMEOUT_MESSAGE = "Scene generation timeout - videos did not complete within {budget}"

# Mux volumes
NARRATION_VOLUME = 1.0
MUSIC_UNDER_NARRATION_VOLUME = 0.3
MUSIC_ONLY_VOLUME = 0.5
AUDIO_BITRATE = "192k"
