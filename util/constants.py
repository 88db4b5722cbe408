class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    VIDEOS = V1 + "/videos"
    VIDEO = VIDEOS + "/{video_id}"
    VIDEO_PROGRESS = VIDEO + "/progress"


class ExternalURIs:
    SIGHTENGINE_CHECK = "https://api.sightengine.com/1.0/check.json"


ALLOWED_VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv")
