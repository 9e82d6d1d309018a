"""Typed message catalog for the Kodi JSON-RPC API.

Parameters are built with ``to_param``/``to_dict`` helpers and results are
decoded with ``from_dict`` class methods. Decoding raises ``KeyError``,
``TypeError`` or ``ValueError`` when a payload does not match the expected
shape; callers turn those into decode errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

PlayerId = int
PlaylistId = int
PlaylistPosition = int

# Kodi reports -1 for "no playlist" and "no position"
NO_PLAYLIST: PlaylistId = -1
NO_POSITION: PlaylistPosition = -1

VIDEO_PLAYLIST_ID: PlaylistId = 1


class GlobalToggle(Enum):
    """Global.Toggle: force off, force on, or flip the current state."""

    OFF = False
    ON = True
    TOGGLE = "toggle"


class GoTo(Enum):
    """Targets for Player.GoTo."""

    PREVIOUS = "previous"
    NEXT = "next"


class SeekStep(Enum):
    """Coarse seek steps understood by Player.Seek."""

    SMALL_FORWARD = "smallforward"
    SMALL_BACKWARD = "smallbackward"
    BIG_FORWARD = "bigforward"
    BIG_BACKWARD = "bigbackward"


class PlayerType(Enum):
    """Player.Type."""

    VIDEO = "video"
    AUDIO = "audio"
    PICTURE = "picture"


class ActivePlayerType(Enum):
    """Where an active player runs."""

    INTERNAL = "internal"
    EXTERNAL = "external"
    REMOTE = "remote"


class PlayerPropertyName(Enum):
    """Player.Property.Name."""

    TYPE = "type"
    PARTYMODE = "partymode"
    SPEED = "speed"
    TIME = "time"
    PERCENTAGE = "percentage"
    TOTAL_TIME = "totaltime"
    PLAYLIST_ID = "playlistid"
    PLAYLIST_POSITION = "position"
    REPEAT = "repeat"
    SHUFFLED = "shuffled"
    CAN_SEEK = "canseek"
    CAN_CHANGE_SPEED = "canchangespeed"
    CAN_MOVE = "canmove"
    CAN_ZOOM = "canzoom"
    CAN_ROTATE = "canrotate"
    CAN_SHUFFLE = "canshuffle"
    CAN_REPEAT = "canrepeat"
    CURRENT_AUDIO_STREAM = "currentaudiostream"
    AUDIO_STREAMS = "audiostreams"
    SUBTITLE_ENABLED = "subtitleenabled"
    CURRENT_SUBTITLE = "currentsubtitle"
    SUBTITLES = "subtitles"
    LIVE = "live"
    CURRENT_VIDEO_STREAM = "currentvideostream"
    VIDEO_STREAMS = "videostreams"


class GUIWindow(Enum):
    """GUI.Window names accepted by GUI.ActivateWindow."""

    ACCESSPOINTS = "accesspoints"
    ADDON = "addon"
    ADDON_BROWSER = "addonbrowser"
    ADDON_INFORMATION = "addoninformation"
    ADDON_SETTINGS = "addonsettings"
    APPEARANCE_SETTINGS = "appearancesettings"
    BUSY_DIALOG = "busydialog"
    BUSY_DIALOG_NO_CANCEL = "busydialognocancel"
    CONTENT_SETTINGS = "contentsettings"
    CONTEXT_MENU = "contextmenu"
    EVENT_LOG = "eventlog"
    EXTENDED_PROGRESS_DIALOG = "extendedprogressdialog"
    FAVOURITES = "favourites"
    FILEBROWSER = "filebrowser"
    FILEMANAGER = "filemanager"
    FULLSCREEN_GAME = "fullscreengame"
    FULLSCREEN_INFO = "fullscreeninfo"
    FULLSCREEN_LIVETV = "fullscreenlivetv"
    FULLSCREEN_LIVETV_INPUT = "fullscreenlivetvinput"
    FULLSCREEN_LIVETV_PREVIEW = "fullscreenlivetvpreview"
    FULLSCREEN_RADIO = "fullscreenradio"
    FULLSCREEN_RADIO_INPUT = "fullscreenradioinput"
    FULLSCREEN_RADIO_PREVIEW = "fullscreenradiopreview"
    FULLSCREEN_VIDEO = "fullscreenvideo"
    GAME_ADVANCED_SETTINGS = "gameadvancedsettings"
    GAME_CONTROLLERS = "gamecontrollers"
    GAME_OSD = "gameosd"
    GAMEPAD_INPUT = "gamepadinput"
    GAMES = "games"
    GAME_SETTINGS = "gamesettings"
    GAME_STRETCH_MODE = "gamestretchmode"
    GAME_VIDEO_FILTER = "gamevideofilter"
    GAME_VIDEO_ROTATION = "gamevideorotation"
    GAME_VOLUME = "gamevolume"
    HOME = "home"
    INFOPROVIDER_SETTINGS = "infoprovidersettings"
    INTERFACE_SETTINGS = "interfacesettings"
    LIBEXPORT_SETTINGS = "libexportsettings"
    LOCK_SETTINGS = "locksettings"
    LOGIN_SCREEN = "loginscreen"
    MEDIA_FILTER = "mediafilter"
    MEDIA_SETTINGS = "mediasettings"
    MEDIA_SOURCE = "mediasource"
    MOVIE_INFORMATION = "movieinformation"
    MUSIC = "music"
    MUSIC_INFORMATION = "musicinformation"
    MUSIC_OSD = "musicosd"
    MUSIC_PLAYLIST = "musicplaylist"
    MUSIC_PLAYLIST_EDITOR = "musicplaylisteditor"
    NETWORK_SETUP = "networksetup"
    NOTIFICATION = "notification"
    NUMERIC_INPUT = "numericinput"
    OK_DIALOG = "okdialog"
    OSD_AUDIO_SETTINGS = "osdaudiosettings"
    OSD_CMS_SETTINGS = "osdcmssettings"
    OSD_SUBTITLE_SETTINGS = "osdsubtitlesettings"
    OSD_VIDEO_SETTINGS = "osdvideosettings"
    PERIPHERAL_SETTINGS = "peripheralsettings"
    PICTURE_INFO = "pictureinfo"
    PICTURES = "pictures"
    PLAYER_CONTROLS = "playercontrols"
    PLAYER_PROCESS_INFO = "playerprocessinfo"
    PLAYER_SETTINGS = "playersettings"
    PROFILES = "profiles"
    PROFILE_SETTINGS = "profilesettings"
    PROGRAMS = "programs"
    PROGRESS_DIALOG = "progressdialog"
    PVR_CHANNEL_GUIDE = "pvrchannelguide"
    PVR_CHANNEL_MANAGER = "pvrchannelmanager"
    PVR_CHANNEL_SCAN = "pvrchannelscan"
    PVR_GROUP_MANAGER = "pvrgroupmanager"
    PVR_GUIDE_INFO = "pvrguideinfo"
    PVR_GUIDE_SEARCH = "pvrguidesearch"
    PVR_OSD_CHANNELS = "pvrosdchannels"
    PVR_OSD_GUIDE = "pvrosdguide"
    PVR_OSD_TELETEXT = "pvrosdteletext"
    PVR_RADIO_RDS_INFO = "pvrradiordsinfo"
    PVR_RECORDING_INFO = "pvrrecordinginfo"
    PVR_SETTINGS = "pvrsettings"
    PVR_TIMER_SETTING = "pvrtimersetting"
    PVR_UPDATE_PROGRESS = "pvrupdateprogress"
    RADIO_CHANNELS = "radiochannels"
    RADIO_GUIDE = "radioguide"
    RADIO_RECORDINGS = "radiorecordings"
    RADIO_SEARCH = "radiosearch"
    RADIO_TIMER_RULES = "radiotimerrules"
    RADIO_TIMERS = "radiotimers"
    SCREEN_CALIBRATION = "screencalibration"
    SCREENSAVER = "screensaver"
    SEEKBAR = "seekbar"
    SELECT_DIALOG = "selectdialog"
    SERVICE_SETTINGS = "servicesettings"
    SETTINGS = "settings"
    SHUTDOWN_MENU = "shutdownmenu"
    SKIN_SETTINGS = "skinsettings"
    SLIDER_DIALOG = "sliderdialog"
    SLIDESHOW = "slideshow"
    SMART_PLAYLIST_EDITOR = "smartplaylisteditor"
    SMART_PLAYLIST_RULE = "smartplaylistrule"
    SONG_INFORMATION = "songinformation"
    SPLASH = "splash"
    STARTUP = "startup"
    START_WINDOW = "startwindow"
    SUBMENU = "submenu"
    SUBTITLE_SEARCH = "subtitlesearch"
    SYSTEM_INFO = "systeminfo"
    SYSTEM_SETTINGS = "systemsettings"
    TELETEXT = "teletext"
    TEXT_VIEWER = "textviewer"
    TV_CHANNELS = "tvchannels"
    TV_GUIDE = "tvguide"
    TV_RECORDINGS = "tvrecordings"
    TV_SEARCH = "tvsearch"
    TV_TIMER_RULES = "tvtimerrules"
    TV_TIMERS = "tvtimers"
    VIDEO_BOOKMARKS = "videobookmarks"
    VIDEO_MENU = "videomenu"
    VIDEO_OSD = "videoosd"
    VIDEO_PLAYLIST = "videoplaylist"
    VIDEOS = "videos"
    VIDEO_TIME_SEEK = "videotimeseek"
    VIRTUAL_KEYBOARD = "virtualkeyboard"
    VISUALISATION = "visualisation"
    VISUALISATION_PRESET_LIST = "visualisationpresetlist"
    VOLUMEBAR = "volumebar"
    WEATHER = "weather"
    YES_NO_DIALOG = "yesnodialog"


def _expect_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"{what}: expected an object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class PlayerTime:
    """Global.Time.

    Kodi occasionally reports negative milliseconds; the value is kept as-is.
    """

    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    milliseconds: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> PlayerTime:
        """Decode a Global.Time object."""
        data = _expect_dict(data, "Global.Time")
        return cls(
            hours=int(data["hours"]),
            minutes=int(data["minutes"]),
            seconds=int(data["seconds"]),
            milliseconds=int(data.get("milliseconds", 0)),
        )

    def to_dict(self) -> dict[str, int]:
        """Encode as a Global.Time object."""
        return {
            "hours": self.hours,
            "minutes": self.minutes,
            "seconds": self.seconds,
            "milliseconds": self.milliseconds,
        }

    @property
    def total_seconds(self) -> int:
        """Whole seconds, ignoring milliseconds."""
        return self.hours * 3600 + self.minutes * 60 + self.seconds

    def __str__(self) -> str:
        return f"{self.hours}:{self.minutes:02d}:{self.seconds:02d}"


@dataclass(frozen=True)
class VideoStream:
    """Player.Video.Stream."""

    codec: str = ""
    height: int = 0
    width: int = 0
    index: int = 0
    language: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> VideoStream:
        """Decode a Player.Video.Stream object."""
        data = _expect_dict(data, "Player.Video.Stream")
        return cls(
            codec=str(data.get("codec", "")),
            height=int(data.get("height", 0)),
            width=int(data.get("width", 0)),
            index=int(data.get("index", 0)),
            language=str(data.get("language", "")),
            name=str(data.get("name", "")),
        )

    @property
    def is_empty(self) -> bool:
        """True when Kodi reports a stream descriptor with no codec."""
        return not self.codec


def _optional_time(data: dict[str, Any], key: str) -> PlayerTime | None:
    value = data.get(key)
    return None if value is None else PlayerTime.from_dict(value)


@dataclass(frozen=True)
class PlayerProperties:
    """Player.Property.Value: a snapshot of the requested player properties.

    Properties that were not requested keep their defaults.
    """

    time: PlayerTime | None = None
    total_time: PlayerTime | None = None
    percentage: float = 0.0
    speed: int = 0
    player_type: PlayerType = PlayerType.VIDEO
    current_video_stream: VideoStream | None = None
    video_streams: list[VideoStream] = field(default_factory=list)
    playlist_id: PlaylistId = NO_PLAYLIST
    playlist_position: PlaylistPosition = NO_POSITION
    can_seek: bool = False
    can_change_speed: bool = False
    can_move: bool = False
    can_zoom: bool = False
    can_rotate: bool = False
    can_shuffle: bool = False
    can_repeat: bool = False
    live: bool = False
    partymode: bool = False
    shuffled: bool = False
    subtitle_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> PlayerProperties:
        """Decode the result of Player.GetProperties."""
        data = _expect_dict(data, "Player.Property.Value")
        stream = data.get("currentvideostream")
        return cls(
            time=_optional_time(data, "time"),
            total_time=_optional_time(data, "totaltime"),
            percentage=float(data.get("percentage", 0.0)),
            speed=int(data.get("speed", 0)),
            player_type=PlayerType(data.get("type", PlayerType.VIDEO.value)),
            current_video_stream=None if stream is None else VideoStream.from_dict(stream),
            video_streams=[VideoStream.from_dict(s) for s in data.get("videostreams", [])],
            playlist_id=int(data.get("playlistid", NO_PLAYLIST)),
            playlist_position=int(data.get("position", NO_POSITION)),
            can_seek=bool(data.get("canseek", False)),
            can_change_speed=bool(data.get("canchangespeed", False)),
            can_move=bool(data.get("canmove", False)),
            can_zoom=bool(data.get("canzoom", False)),
            can_rotate=bool(data.get("canrotate", False)),
            can_shuffle=bool(data.get("canshuffle", False)),
            can_repeat=bool(data.get("canrepeat", False)),
            live=bool(data.get("live", False)),
            partymode=bool(data.get("partymode", False)),
            shuffled=bool(data.get("shuffled", False)),
            subtitle_enabled=bool(data.get("subtitleenabled", False)),
        )


@dataclass(frozen=True)
class SeekResult:
    """Result of Player.Seek."""

    percentage: float | None = None
    time: PlayerTime | None = None
    total_time: PlayerTime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SeekResult:
        """Decode the result of Player.Seek."""
        data = _expect_dict(data, "Player.Seek result")
        percentage = data.get("percentage")
        return cls(
            percentage=None if percentage is None else float(percentage),
            time=_optional_time(data, "time"),
            total_time=_optional_time(data, "totaltime"),
        )


@dataclass(frozen=True)
class ActivePlayer:
    """One entry of Player.GetActivePlayers."""

    player_id: PlayerId
    type: PlayerType
    player_type: ActivePlayerType

    @classmethod
    def from_dict(cls, data: Any) -> ActivePlayer:
        """Decode one active player entry."""
        data = _expect_dict(data, "active player")
        return cls(
            player_id=int(data["playerid"]),
            type=PlayerType(data["type"]),
            player_type=ActivePlayerType(data["playertype"]),
        )


# Seek values


@dataclass(frozen=True)
class SeekAbsolute:
    """Seek to an absolute position."""

    time: PlayerTime

    def to_param(self) -> dict[str, Any]:
        """Encode as the ``value`` of Player.Seek."""
        return {"time": self.time.to_dict()}


@dataclass(frozen=True)
class SeekRelativeSeconds:
    """Seek by a signed number of seconds."""

    seconds: int

    def to_param(self) -> dict[str, Any]:
        """Encode as the ``value`` of Player.Seek."""
        return {"seconds": self.seconds}


@dataclass(frozen=True)
class SeekRelativeStep:
    """Seek by one of Kodi's predefined steps."""

    step: SeekStep

    def to_param(self) -> dict[str, Any]:
        """Encode as the ``value`` of Player.Seek."""
        return {"step": self.step.value}


Seek = SeekAbsolute | SeekRelativeSeconds | SeekRelativeStep


# Notifications


@dataclass(frozen=True)
class NotificationItem:
    """The ``item`` carried by player notifications.

    Only ``type`` is always present; the remaining fields depend on it
    (movie, episode, musicvideo, song, picture, channel or unknown).
    """

    type: str
    title: str | None = None
    file: str | None = None
    id: int | None = None
    year: int | None = None
    showtitle: str | None = None
    season: int | None = None
    episode: int | None = None
    album: str | None = None
    artist: str | None = None
    track: int | None = None
    channeltype: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> NotificationItem:
        """Decode a notification item."""
        data = _expect_dict(data, "notification item")
        artist = data.get("artist")
        if isinstance(artist, list):
            artist = ", ".join(str(a) for a in artist)

        def _int(key: str) -> int | None:
            value = data.get(key)
            return None if value is None else int(value)

        return cls(
            type=str(data["type"]),
            title=data.get("title"),
            file=data.get("file"),
            id=_int("id"),
            year=_int("year"),
            showtitle=data.get("showtitle"),
            season=_int("season"),
            episode=_int("episode"),
            album=data.get("album"),
            artist=artist,
            track=_int("track"),
            channeltype=data.get("channeltype"),
        )

    def describe(self) -> str | None:
        """Return a short human-readable label for the item."""
        if self.type == "episode" and self.showtitle:
            return f"{self.showtitle} S{self.season or 0:02d}E{self.episode or 0:02d} {self.title or ''}".strip()
        if self.type in ("song", "musicvideo") and self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.file


@dataclass(frozen=True)
class PlayerInfo:
    """The ``player`` object carried by player notifications."""

    player_id: PlayerId
    speed: float

    @classmethod
    def from_dict(cls, data: Any) -> PlayerInfo:
        """Decode the player object."""
        data = _expect_dict(data, "notification player")
        return cls(player_id=int(data["playerid"]), speed=float(data.get("speed", 0)))


@dataclass(frozen=True)
class PlayerNotification:
    """Base for notifications carrying ``item`` and ``player``."""

    method: str = field(init=False, default="")
    sender: str
    item: NotificationItem
    player: PlayerInfo

    @classmethod
    def from_params(cls, params: Any) -> PlayerNotification:
        """Decode the ``params`` of the notification."""
        params = _expect_dict(params, cls.__name__)
        data = _expect_dict(params["data"], f"{cls.__name__} data")
        return cls(
            sender=str(params.get("sender", "")),
            item=NotificationItem.from_dict(data["item"]),
            player=PlayerInfo.from_dict(data["player"]),
        )


@dataclass(frozen=True)
class PlayerOnPlay(PlayerNotification):
    """Player.OnPlay."""

    method: str = field(init=False, default="Player.OnPlay")


@dataclass(frozen=True)
class PlayerOnAVStart(PlayerNotification):
    """Player.OnAVStart: audio/video output has actually started."""

    method: str = field(init=False, default="Player.OnAVStart")


@dataclass(frozen=True)
class PlayerOnAVChange(PlayerNotification):
    """Player.OnAVChange."""

    method: str = field(init=False, default="Player.OnAVChange")


@dataclass(frozen=True)
class PlayerOnPause(PlayerNotification):
    """Player.OnPause."""

    method: str = field(init=False, default="Player.OnPause")


@dataclass(frozen=True)
class PlayerOnResume(PlayerNotification):
    """Player.OnResume."""

    method: str = field(init=False, default="Player.OnResume")


@dataclass(frozen=True)
class PlayerOnStop:
    """Player.OnStop."""

    sender: str
    item: NotificationItem
    end: bool
    method: str = field(init=False, default="Player.OnStop")

    @classmethod
    def from_params(cls, params: Any) -> PlayerOnStop:
        """Decode the ``params`` of the notification."""
        params = _expect_dict(params, "PlayerOnStop")
        data = _expect_dict(params["data"], "PlayerOnStop data")
        return cls(
            sender=str(params.get("sender", "")),
            item=NotificationItem.from_dict(data["item"]),
            end=bool(data.get("end", False)),
        )


Notification = (
    PlayerOnPlay | PlayerOnAVStart | PlayerOnAVChange | PlayerOnPause | PlayerOnResume | PlayerOnStop
)

NOTIFICATION_TYPES: dict[str, type[PlayerNotification] | type[PlayerOnStop]] = {
    "Player.OnPlay": PlayerOnPlay,
    "Player.OnAVStart": PlayerOnAVStart,
    "Player.OnAVChange": PlayerOnAVChange,
    "Player.OnPause": PlayerOnPause,
    "Player.OnResume": PlayerOnResume,
    "Player.OnStop": PlayerOnStop,
}


def parse_notification(frame: dict[str, Any]) -> Notification | None:
    """Decode a notification frame, or return None if it is not in the catalog."""
    notification_type = NOTIFICATION_TYPES.get(frame.get("method", ""))
    if notification_type is None:
        return None
    try:
        return notification_type.from_params(frame.get("params"))  # type: ignore[return-value]
    except (KeyError, TypeError, ValueError):
        return None
