"""
Declarative per-destination upload configuration.

Destination differences are data, not subclasses: one immutable record per platform,
keyed by a closed enum and consumed by the generic engine. Selector lists are in
priority order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse


class DestinationId(str, Enum):
    DOUYIN = "douyin"
    XIAOHONGSHU = "xiaohongshu"
    BILIBILI = "bilibili"
    WECHAT = "wechat"
    YOUTUBE = "youtube"


@dataclass(frozen=True)
class DestinationConfig:
    id: DestinationId
    name: str
    name_en: str
    login_url: str
    upload_url: str
    target_host: str
    allowed_paths: tuple[str, ...] = ()

    # Upload surface detection
    surface_selectors: tuple[str, ...] = ()
    surface_text_markers: tuple[str, ...] = ()
    blocked_text_markers: tuple[str, ...] = ()
    init_text_markers: tuple[str, ...] = ()
    login_text_markers: tuple[str, ...] = ()

    # Upload strategies
    file_input_selectors: tuple[str, ...] = ("input[type='file']",)
    drop_zone_selectors: tuple[str, ...] = ()
    pre_click_selectors: tuple[str, ...] = ()
    click_selectors: tuple[str, ...] = ()
    click_text_markers: tuple[str, ...] = ()
    embedded_host_selectors: tuple[tuple[str, int], ...] = ()

    # Upload-started signals
    signal_url_patterns: tuple[str, ...] = ()
    progress_selectors: tuple[str, ...] = ()
    uploading_text_markers: tuple[str, ...] = ()
    replace_text_markers: tuple[str, ...] = ()

    # Auxiliary fields
    title_selectors: tuple[str, ...] = ()
    title_editable_selector: str | None = None
    description_selectors: tuple[str, ...] = ()
    description_editable_selector: str | None = None
    tag_selectors: tuple[str, ...] = ()

    # Policy flags
    require_surface_ready: bool = True
    fill_failure_is_error: bool = True
    self_heal_on_weak_ready: bool = False
    min_body_text_len_for_weak_ready: int = 0
    chooser_first: bool = False
    drop_zone_geometry_fallback: bool = False
    click_rounds: int = 1

    @property
    def tag(self) -> str:
        """Log prefix, e.g. ``[douyin]``."""
        return f"[{self.id.value}]"

    def path_allowed(self, url: str) -> bool:
        if not self.allowed_paths:
            return True
        return any(path in url for path in self.allowed_paths)

    def is_target_url(self, url: str) -> bool:
        host = urlparse(url or "").hostname or ""
        return bool(host) and self.target_host in host and self.path_allowed(url)


_COMMON_UPLOADING = ("上传中", "正在上传", "处理中", "转码中", "Uploading", "Processing")
_COMMON_REPLACE = ("重新上传", "更换视频", "替换视频", "Replace")
_COMMON_PROGRESS = ("[class*='progress']", "[role='progressbar']")

DOUYIN = DestinationConfig(
    id=DestinationId.DOUYIN,
    name="抖音",
    name_en="Douyin",
    login_url="https://creator.douyin.com",
    upload_url="https://creator.douyin.com/creator-micro/content/upload",
    target_host="creator.douyin.com",
    allowed_paths=(
        "/creator-micro/content/upload",
        "/creator-micro/content/post/video",
    ),
    surface_selectors=(
        "div[class*='upload']",
        "div[class*='container-drag']",
        "div[class*='content-upload']",
    ),
    surface_text_markers=("上传视频", "点击上传", "重新上传", "更换视频"),
    blocked_text_markers=("访问过于频繁", "账号异常", "请完成安全验证"),
    init_text_markers=("加载中", "正在加载"),
    login_text_markers=("扫码登录", "验证码登录", "手机号登录"),
    file_input_selectors=(
        "div[class^='container'] input[type='file']",
        "div[class^='container'] input",
        "input[type='file'][accept*='video']",
        "[class*='upload'] input[type='file']",
        "input[type='file']",
    ),
    drop_zone_selectors=(
        "div[class*='container-drag']",
        "div[class*='upload-zone']",
        "div[class*='upload-area']",
        "div[class*='drag']",
        "div[class*='uploader']",
        "div[class*='upload-btn']",
        "div[class*='content-upload']",
    ),
    click_selectors=(
        "button[class*='upload']",
        "div[class*='upload-btn']",
        "div[class*='upload'] button",
        "[data-e2e*='upload']",
        "[class*='drag']",
    ),
    click_text_markers=("上传视频", "点击上传"),
    signal_url_patterns=("/creator-micro/content/post/video",),
    progress_selectors=_COMMON_PROGRESS,
    uploading_text_markers=_COMMON_UPLOADING,
    replace_text_markers=_COMMON_REPLACE,
    title_selectors=(
        "input[placeholder*='标题']",
        "input[placeholder*='title']",
        ".title-input input",
        "[class*='title'] input[type='text']",
    ),
    title_editable_selector="[contenteditable='true']",
    description_selectors=(
        "textarea[placeholder*='描述']",
        "textarea[placeholder*='简介']",
        "[class*='desc'] textarea",
    ),
    description_editable_selector="[contenteditable='true']",
    tag_selectors=(
        "input[placeholder*='标签']",
        "input[placeholder*='话题']",
        "[class*='tag'] input",
        "[class*='topic'] input",
    ),
)

XIAOHONGSHU = DestinationConfig(
    id=DestinationId.XIAOHONGSHU,
    name="小红书",
    name_en="Xiaohongshu",
    login_url="https://creator.xiaohongshu.com",
    upload_url="https://creator.xiaohongshu.com/publish/publish",
    target_host="creator.xiaohongshu.com",
    allowed_paths=("/publish/publish", "/publish"),
    surface_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[data-testid*='upload']",
    ),
    surface_text_markers=("上传视频", "点击上传", "拖拽", "发布笔记"),
    blocked_text_markers=("操作频繁", "账号存在异常"),
    init_text_markers=("加载中",),
    login_text_markers=("短信登录", "扫码登录", "登录后"),
    file_input_selectors=(
        "input[type='file'][accept*='video']",
        "[class*='upload'] input[type='file']",
        "input[type='file']",
    ),
    drop_zone_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[class*='content-upload']",
    ),
    click_selectors=(
        "button[class*='upload']",
        "[class*='upload-btn']",
        "[class*='upload'] button",
        "[data-testid*='upload']",
        "[role='button']",
    ),
    click_text_markers=("上传视频", "点击上传"),
    progress_selectors=_COMMON_PROGRESS,
    uploading_text_markers=_COMMON_UPLOADING,
    replace_text_markers=_COMMON_REPLACE,
    title_selectors=(
        "input[placeholder*='标题']",
        "input[placeholder*='添加标题']",
        "[class*='title'] input",
        "input[maxlength='20']",
    ),
    title_editable_selector="[contenteditable='true']",
    description_selectors=(
        "textarea[placeholder*='描述']",
        "textarea[placeholder*='正文']",
        "[class*='desc'] textarea",
        "[class*='content'] textarea",
    ),
    description_editable_selector="[contenteditable='true']",
    tag_selectors=(
        "input[placeholder*='话题']",
        "input[placeholder*='标签']",
        "[class*='tag'] input",
        "[class*='topic'] input",
    ),
)

BILIBILI = DestinationConfig(
    id=DestinationId.BILIBILI,
    name="哔哩哔哩",
    name_en="Bilibili",
    login_url="https://passport.bilibili.com/login",
    upload_url="https://member.bilibili.com/platform/upload/video/frame",
    target_host="member.bilibili.com",
    allowed_paths=("/platform/upload", "/video/frame", "/article"),
    surface_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[class*='bcc-upload']",
    ),
    surface_text_markers=("上传视频", "拖拽视频", "选择视频", "投稿"),
    file_input_selectors=(
        "input[type='file'][accept*='video']",
        "[class*='upload'] input[type='file']",
        "input[type='file']",
    ),
    drop_zone_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[class*='bcc-upload']",
    ),
    click_selectors=(
        "button[class*='upload']",
        "[class*='upload-btn']",
        "[class*='upload'] button",
        "[class*='drag']",
    ),
    click_text_markers=("上传视频", "选择视频", "上传文件", "投稿"),
    progress_selectors=("[class*='progress']", "[class*='upload-status']"),
    uploading_text_markers=_COMMON_UPLOADING,
    replace_text_markers=_COMMON_REPLACE,
    title_selectors=(
        "input[placeholder*='标题']",
        "input[placeholder*='稿件标题']",
        "[class*='title'] input",
        "input[name*='title']",
    ),
    title_editable_selector="[contenteditable='true']",
    description_selectors=(
        "textarea[placeholder*='简介']",
        "textarea[placeholder*='描述']",
        "[class*='desc'] textarea",
        "textarea[name*='desc']",
    ),
    description_editable_selector="[contenteditable='true']",
    tag_selectors=(
        "input[placeholder*='标签']",
        "input[placeholder*='Enter']",
        "[class*='tag'] input",
        "input[name*='tag']",
    ),
    require_surface_ready=True,
    fill_failure_is_error=True,
)

# Channels renders its real upload widget inside a wujie micro-frontend shadow root,
# with flaky chooser behaviour and no stable selectors.
WECHAT = DestinationConfig(
    id=DestinationId.WECHAT,
    name="微信视频号",
    name_en="WeChat Channels",
    login_url="https://channels.weixin.qq.com",
    upload_url="https://channels.weixin.qq.com/platform/post/create",
    target_host="channels.weixin.qq.com",
    allowed_paths=("/platform/post/create", "/platform/post"),
    surface_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[class*='post-create']",
    ),
    surface_text_markers=("上传视频", "拖拽", "发布视频", "发表视频"),
    blocked_text_markers=("操作过于频繁", "暂时无法使用", "该账号已被限制"),
    init_text_markers=("加载中", "正在加载", "初始化"),
    login_text_markers=("扫码登录", "微信扫一扫", "请使用微信扫描"),
    file_input_selectors=(
        "input[type='file'][accept*='video']",
        "[class*='upload'] input[type='file']",
        "input[type='file']",
    ),
    drop_zone_selectors=(
        "[class*='upload']",
        "[class*='drag']",
        "[class*='drop']",
        "[class*='post-create']",
    ),
    pre_click_selectors=("[class*='post-create'] [class*='add']",),
    click_selectors=(
        "button[class*='upload']",
        "[class*='upload-btn']",
        "[class*='upload'] button",
        "[class*='drag']",
        "[role='button']",
    ),
    click_text_markers=("上传视频", "点击上传", "拖拽"),
    embedded_host_selectors=(("wujie-app", 30), ("micro-app", 24), ("[data-wujie-id]", 20)),
    signal_url_patterns=("/platform/post/edit",),
    progress_selectors=_COMMON_PROGRESS + ("[class*='percent']",),
    uploading_text_markers=_COMMON_UPLOADING,
    replace_text_markers=_COMMON_REPLACE + ("删除视频",),
    title_selectors=(
        "input[placeholder*='标题']",
        "input[placeholder*='描述']",
        "[class*='title'] input",
        "input[type='text']",
    ),
    title_editable_selector="[contenteditable='true']",
    description_selectors=(
        "textarea[placeholder*='描述']",
        "textarea[placeholder*='内容']",
        "[class*='desc'] textarea",
        "[class*='content'] textarea",
    ),
    description_editable_selector="[contenteditable='true']",
    tag_selectors=(
        "input[placeholder*='标签']",
        "input[placeholder*='话题']",
        "[class*='tag'] input",
        "[class*='topic'] input",
    ),
    require_surface_ready=False,
    fill_failure_is_error=False,
    self_heal_on_weak_ready=True,
    min_body_text_len_for_weak_ready=40,
    chooser_first=True,
    drop_zone_geometry_fallback=True,
    click_rounds=3,
)

YOUTUBE = DestinationConfig(
    id=DestinationId.YOUTUBE,
    name="YouTube",
    name_en="YouTube",
    login_url="https://accounts.google.com",
    upload_url="https://studio.youtube.com",
    target_host="studio.youtube.com",
    surface_selectors=(
        "ytcp-button#create-icon",
        "#create-icon",
        "[class*='upload']",
        "input[type='file']",
    ),
    surface_text_markers=("Upload videos", "Select files", "上传视频", "选择文件"),
    blocked_text_markers=("Daily upload limit reached", "Something went wrong"),
    init_text_markers=("Loading",),
    login_text_markers=("Sign in", "Choose an account", "登录"),
    file_input_selectors=(
        "input[type='file'][accept*='video']",
        "input[type='file']",
    ),
    drop_zone_selectors=(
        "[class*='upload']",
        "ytcp-video-upload-progress",
        "[id*='upload']",
    ),
    pre_click_selectors=("ytcp-button#create-icon", "#create-icon"),
    click_selectors=(
        "tp-yt-paper-item[test-id*='upload-video']",
        "[aria-label*='Upload videos']",
        "#select-files-button",
        "button[aria-label*='Create']",
    ),
    click_text_markers=("Select files", "Upload videos", "选择文件"),
    progress_selectors=("ytcp-video-upload-progress", "[class*='progress-label']"),
    uploading_text_markers=("Uploading", "Processing", "Upload complete", "上传中"),
    replace_text_markers=("Replace",),
    title_selectors=(
        "#title-textarea #textbox",
        "textarea#textbox",
        "input[aria-label*='Title']",
        "[aria-label*='标题']",
    ),
    title_editable_selector="#title-textarea #textbox, [contenteditable='true']",
    description_selectors=(
        "#description-textarea #textbox",
        "textarea[aria-label*='Description']",
        "textarea[aria-label*='描述']",
        "[id*='description'] #textbox",
    ),
    description_editable_selector="#description-textarea #textbox, [contenteditable='true']",
    tag_selectors=(
        "input[aria-label*='Tags']",
        "input[aria-label*='标签']",
        "#text-input input",
        "[class*='tags'] input",
    ),
)

DESTINATIONS: dict[DestinationId, DestinationConfig] = {
    cfg.id: cfg for cfg in (DOUYIN, XIAOHONGSHU, BILIBILI, WECHAT, YOUTUBE)
}


def get_destination(destination: DestinationId | str) -> DestinationConfig:
    """Look up a destination config.

    Raises:
        KeyError: If the destination id is unknown
    """
    try:
        key = DestinationId(destination)
    except ValueError as e:
        raise KeyError(f"Unknown destination: {destination}") from e
    return DESTINATIONS[key]


def all_destinations() -> list[DestinationConfig]:
    """All destinations in display order."""
    return [DOUYIN, XIAOHONGSHU, BILIBILI, WECHAT, YOUTUBE]
