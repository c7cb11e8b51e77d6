from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import flet as ft
import flet_video as ftv

from drivetrim.config import TOKEN_ENV, ConfigStore
from drivetrim.drive import DriveClient
from drivetrim.errors import DriveTrimError, ResourceError
from drivetrim.ffmpeg import FFmpegEngine, audio_filter_chain, video_filter_chain
from drivetrim.model import (
    MAX_FADE_SEC,
    MAX_SPEED,
    MAX_VOLUME_PCT,
    MIN_SPEED,
    ProcessingState,
    Quality,
)
from drivetrim.session import STAGE_LOADING, EditSession
from drivetrim.shortcuts import (
    ACTION_FRAME_BACK,
    ACTION_FRAME_FORWARD,
    ACTION_PREVIEW,
    ACTION_PROCESS,
    ACTION_RESET_TRIM,
    ACTION_SECOND_BACK,
    ACTION_SECOND_FORWARD,
    ACTION_SET_END,
    ACTION_SET_START,
    ACTION_SHOW_SHORTCUTS,
    ACTION_TOGGLE_PLAY_PAUSE,
    resolve_shortcut_action,
    shortcut_legend,
)
from drivetrim.timecode import format_bitrate, format_bytes, format_time, format_time_precise
from drivetrim.timeline import FRAME_INTERVAL_SEC, Handle, TimelineController

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("drivetrim")

TRACK_W = 720.0
MIN_TRACK_W = 320.0
TRACK_H = 48.0
HANDLE_W = 12.0
# Options column, divider and page padding to the right of the timeline.
SIDE_PANEL_W = 380.0


def main(page: ft.Page) -> None:
    page.title = "DriveTrim"
    _platform = str(getattr(page, "platform", "") or "").lower()
    is_web = bool(getattr(page, "web", False)) or ("web" in _platform)
    if not is_web:
        page.window.width = 1180
        page.window.height = 820
    page.theme_mode = ft.ThemeMode.DARK
    page.padding = 12

    root = Path(__file__).resolve().parent
    cfg = ConfigStore.default()
    engine = FFmpegEngine(root)
    drive = DriveClient(
        cfg.access_token(),
        api_base=cfg.api_base(),
        upload_base=cfg.upload_base(),
        timeout=cfg.request_timeout_sec(),
    )

    session: Optional[EditSession] = None
    preview_video: Optional[ftv.Video] = None
    is_playing = False
    stop_at_selection_end = False
    playback_loop_id = 0
    typing_shortcuts_blocked = False
    process_future = None
    # Document-level pointer listeners; only set while a handle is dragged.
    drag_move: Optional[Callable[[float], None]] = None
    drag_up: Optional[Callable[[], None]] = None

    # ---------- helpers ----------
    def snack(msg: str) -> None:
        page.show_dialog(ft.SnackBar(ft.Text(msg)))

    def _event_local_x(e) -> float:
        try:
            return float(e.local_position.x)
        except Exception:
            pass
        try:
            return float(getattr(e, "local_x", 0.0) or 0.0)
        except Exception:
            return 0.0

    def _capture(on_move: Callable[[float], None], on_up: Callable[[], None]) -> Callable[[], None]:
        nonlocal drag_move, drag_up
        drag_move, drag_up = on_move, on_up
        page.run_task(_frame_flush_loop)

        def _release() -> None:
            nonlocal drag_move, drag_up
            drag_move, drag_up = None, None

        return _release

    def _on_timeline_change(_tl: TimelineController) -> None:
        update_timeline_ui()

    timeline = TimelineController(
        0.0,
        TRACK_W,
        capture=_capture,
        on_change=_on_timeline_change,
    )

    def _on_processing_state(st: ProcessingState) -> None:
        progress_bar.value = st.progress_pct / 100.0
        progress_bar.visible = st.is_processing or st.progress_pct >= 100.0
        stage_text.value = f"{st.stage} {int(round(st.progress_pct))}%" if st.is_processing else st.stage
        refresh_buttons()
        try:
            page.update()
        except Exception:
            pass

    # ---------- timeline widget ----------
    start_label = ft.Text("0:00.00", size=11, color=ft.Colors.WHITE70)
    end_label = ft.Text("0:00.00", size=11, color=ft.Colors.WHITE70)
    sel_label = ft.Text("Duration: 0:00.00", size=11, color=ft.Colors.WHITE70)
    marker_row = ft.Row([], alignment=ft.MainAxisAlignment.SPACE_BETWEEN, width=TRACK_W)

    selected_band = ft.Container(left=0, top=0, width=TRACK_W, height=TRACK_H, bgcolor=ft.Colors.INDIGO_400, border_radius=6)
    start_handle = ft.Container(
        left=0,
        top=0,
        width=HANDLE_W,
        height=TRACK_H,
        bgcolor=ft.Colors.INDIGO_700,
        border_radius=6,
    )
    end_handle = ft.Container(
        left=TRACK_W - HANDLE_W,
        top=0,
        width=HANDLE_W,
        height=TRACK_H,
        bgcolor=ft.Colors.INDIGO_700,
        border_radius=6,
    )
    playhead_line = ft.Container(left=0, top=0, width=2, height=TRACK_H, bgcolor=ft.Colors.RED_400)
    track_bg = ft.Container(left=0, top=0, width=TRACK_W, height=TRACK_H, bgcolor=ft.Colors.GREY_800, border_radius=6)
    track_stack = ft.Stack(
        [
            track_bg,
            selected_band,
            start_handle,
            end_handle,
            playhead_line,
        ],
        width=TRACK_W,
        height=TRACK_H,
    )

    def update_timeline_ui() -> None:
        w = timeline.track_width
        sx = timeline.sec_to_x(timeline.start_sec)
        ex = timeline.sec_to_x(timeline.end_sec)
        px = timeline.sec_to_x(timeline.playhead_sec)
        selected_band.left = sx
        selected_band.width = max(1.0, ex - sx)
        start_handle.left = max(0.0, min(w - HANDLE_W, sx))
        end_handle.left = max(0.0, min(w - HANDLE_W, ex - HANDLE_W))
        playhead_line.left = max(0.0, min(w - 2.0, px - 1.0))
        start_label.value = format_time_precise(timeline.start_sec)
        end_label.value = format_time_precise(timeline.end_sec)
        sel_label.value = f"Duration: {format_time_precise(timeline.selection_sec)}"
        position_text.value = f"{format_time(timeline.playhead_sec)} / {format_time(timeline.duration)}"
        refresh_operations_preview()
        try:
            page.update()
        except Exception:
            pass

    def rebuild_markers() -> None:
        d = timeline.duration
        marker_row.controls = [
            ft.Text(format_time_precise(d / 4 * i), size=10, color=ft.Colors.WHITE54) for i in range(5)
        ]

    async def _frame_flush_loop() -> None:
        # Applies coalesced start/end moves even when the pointer stops between frames.
        while timeline.is_dragging:
            await asyncio.sleep(FRAME_INTERVAL_SEC)
            timeline.flush()

    def _press_track(x: float) -> None:
        # Tap-down and pan-start can both arrive for one press; the second is a no-op.
        if timeline.is_dragging:
            return
        grabbed = timeline.press(x)
        if grabbed == Handle.PLAYHEAD:
            stop_playback()
        elif grabbed is None:
            _seek_video_to_playhead()

    def on_track_tap_down(e: ft.TapEvent) -> None:
        _press_track(_event_local_x(e))

    def on_track_tap_up(_e) -> None:
        # A tap on a handle is a drag that never moved.
        if drag_up is not None:
            drag_up()

    def on_track_pan_start(e: ft.DragStartEvent) -> None:
        _press_track(_event_local_x(e))

    def on_track_pan_update(e: ft.DragUpdateEvent) -> None:
        if drag_move is None:
            return
        drag_move(_event_local_x(e))
        if timeline.drag_handle == Handle.PLAYHEAD:
            _seek_video_to_playhead()

    def on_track_pan_end(_e) -> None:
        was_playhead = timeline.drag_handle == Handle.PLAYHEAD
        if drag_up is not None:
            drag_up()
        if not was_playhead:
            _seek_video_to_playhead()

    timeline_surface = ft.GestureDetector(
        mouse_cursor=ft.MouseCursor.RESIZE_LEFT_RIGHT,
        drag_interval=0,
        on_tap_down=on_track_tap_down,
        on_tap_up=on_track_tap_up,
        on_pan_start=on_track_pan_start,
        on_pan_update=on_track_pan_update,
        on_pan_end=on_track_pan_end,
        on_horizontal_drag_start=on_track_pan_start,
        on_horizontal_drag_update=on_track_pan_update,
        on_horizontal_drag_end=on_track_pan_end,
        content=track_stack,
    )

    # ---------- preview ----------
    preview_slot = ft.Container(
        expand=True,
        height=380,
        bgcolor=ft.Colors.BLACK,
        alignment=ft.Alignment(0, 0),
        content=ft.Text("Enter a Drive file id and press Load", color=ft.Colors.WHITE54),
    )
    position_text = ft.Text("0:00 / 0:00", size=12)
    info_text = ft.Text("", size=12, color=ft.Colors.WHITE70, selectable=True)

    def _show_media_info() -> None:
        if session is None or session.remote is None:
            info_text.value = ""
            return
        parts = [f"Name: {session.remote.name}", f"Duration: {format_time(timeline.duration)}"]
        if session.remote.size:
            parts.append(f"Size: {format_bytes(session.remote.size)}")
        m = session.media
        if m is not None:
            if m.width and m.height:
                parts.append(f"Resolution: {m.width}x{m.height}")
            if m.fps:
                parts.append(f"FPS: {m.fps:.2f}")
            if m.video_codec:
                parts.append(f"Codec: {m.video_codec}")
            parts.append(f"Bitrate: {format_bitrate(m.bitrate)}")
        info_text.value = "   ".join(parts)

    def _fps() -> float:
        if session is not None and session.media is not None and session.media.fps > 0:
            return session.media.fps
        return 30.0

    async def _seek_video(sec: float) -> None:
        if preview_video is None:
            return
        try:
            await preview_video.seek(int(max(0.0, sec) * 1000))
        except Exception:
            log.debug("seek failed", exc_info=True)

    def _seek_video_to_playhead() -> None:
        target = timeline.playhead_sec

        async def _do() -> None:
            await _seek_video(target)

        page.run_task(_do)

    async def _playback_loop(loop_id: int) -> None:
        nonlocal is_playing
        while is_playing and loop_id == playback_loop_id and preview_video is not None:
            await asyncio.sleep(0.1)
            try:
                pos_raw = await preview_video.get_current_position()
            except Exception:
                pos_raw = None
            if loop_id != playback_loop_id or not is_playing:
                break
            if pos_raw is None:
                continue
            try:
                if hasattr(pos_raw, "in_milliseconds"):
                    pos_sec = float(pos_raw.in_milliseconds) / 1000.0
                else:
                    pos_sec = float(pos_raw) / 1000.0
            except (TypeError, ValueError):
                continue
            reached_end = timeline.set_playhead(pos_sec)
            if reached_end and stop_at_selection_end:
                stop_playback()

    def start_playback(from_selection_start: bool) -> None:
        nonlocal is_playing, playback_loop_id, stop_at_selection_end
        if preview_video is None or timeline.disabled:
            return
        if from_selection_start:
            timeline.set_playhead(timeline.start_sec)
        stop_at_selection_end = True
        is_playing = True
        playback_loop_id += 1
        loop_id = playback_loop_id
        target = timeline.playhead_sec

        async def _do() -> None:
            await _seek_video(target)
            try:
                await preview_video.play()
            except Exception:
                log.debug("play failed", exc_info=True)
            await _playback_loop(loop_id)

        page.run_task(_do)
        page.update()

    def stop_playback() -> None:
        nonlocal is_playing, playback_loop_id
        is_playing = False
        playback_loop_id += 1
        pv = preview_video
        if pv is not None:

            async def _pause() -> None:
                try:
                    await pv.pause()
                except Exception:
                    pass

            page.run_task(_pause)
        try:
            page.update()
        except Exception:
            pass

    def toggle_play(_e=None) -> None:
        if is_playing:
            stop_playback()
        else:
            start_playback(from_selection_start=False)

    def preview_selection(_e=None) -> None:
        stop_playback()
        start_playback(from_selection_start=True)

    # ---------- edit controls ----------
    volume_label = ft.Text("Volume: 100%", size=12)
    volume_slider = ft.Slider(min=0, max=MAX_VOLUME_PCT, value=100, divisions=200)
    fade_in_label = ft.Text("Fade In: 0s", size=12)
    fade_in_slider = ft.Slider(min=0, max=MAX_FADE_SEC, value=0, divisions=20)
    fade_out_label = ft.Text("Fade Out: 0s", size=12)
    fade_out_slider = ft.Slider(min=0, max=MAX_FADE_SEC, value=0, divisions=20)
    speed_label = ft.Text("Speed: 1x", size=12)
    speed_slider = ft.Slider(min=MIN_SPEED, max=MAX_SPEED, value=1.0, divisions=30, round=2)
    quality_dd = ft.Dropdown(
        label="Quality",
        width=220,
        dense=True,
        value=Quality.MEDIUM.value,
        options=[
            ft.dropdown.Option(key=Quality.LOW.value, text="Low (smaller file)"),
            ft.dropdown.Option(key=Quality.MEDIUM.value, text="Medium"),
            ft.dropdown.Option(key=Quality.HIGH.value, text="High (larger file)"),
        ],
    )
    ops_text = ft.Text("", size=11, font_family="monospace", color=ft.Colors.WHITE60, selectable=True)

    def refresh_operations_preview() -> None:
        if session is None or not session.loaded or timeline.duration <= 0:
            ops_text.value = ""
            return
        try:
            seq = session.preview_operations()
        except DriveTrimError as ex:
            ops_text.value = ex.user_message()
            return
        vf = video_filter_chain(seq) or "(none)"
        af = audio_filter_chain(seq) or "(none)"
        enc = seq.encode
        ops_text.value = (
            f"video: {vf}\naudio: {af}\n"
            f"encode: libx264 crf={enc.crf} preset={enc.preset}\n"
            f"output length: {format_time_precise(seq.output_duration_sec)}"
        )

    def _on_option(key: str, label: ft.Text, fmt: Callable[[float], str]) -> Callable:
        def _handler(e: ft.ControlEvent) -> None:
            try:
                v = float(e.control.value)
            except (TypeError, ValueError):
                return
            label.value = fmt(v)
            if session is not None:
                session.set_option(key, v)
            if key == "speed" and preview_video is not None:
                try:
                    preview_video.playback_rate = v
                except Exception:
                    pass
            if key == "volume_pct" and preview_video is not None:
                try:
                    preview_video.volume = min(100.0, v)
                except Exception:
                    pass
            refresh_operations_preview()
            page.update()

        return _handler

    volume_slider.on_change = _on_option("volume_pct", volume_label, lambda v: f"Volume: {int(round(v))}%")
    fade_in_slider.on_change = _on_option("fade_in_sec", fade_in_label, lambda v: f"Fade In: {v:g}s")
    fade_out_slider.on_change = _on_option("fade_out_sec", fade_out_label, lambda v: f"Fade Out: {v:g}s")
    speed_slider.on_change = _on_option("speed", speed_label, lambda v: f"Speed: {v:g}x")

    def on_quality_change(e: ft.ControlEvent) -> None:
        if session is not None:
            session.set_option("quality", str(e.control.value))
        refresh_operations_preview()
        page.update()

    quality_dd.on_change = on_quality_change

    def reset_controls() -> None:
        volume_slider.value, volume_label.value = 100, "Volume: 100%"
        fade_in_slider.value, fade_in_label.value = 0, "Fade In: 0s"
        fade_out_slider.value, fade_out_label.value = 0, "Fade Out: 0s"
        speed_slider.value, speed_label.value = 1.0, "Speed: 1x"
        quality_dd.value = Quality.MEDIUM.value

    # ---------- processing ----------
    progress_bar = ft.ProgressBar(value=0.0, width=TRACK_W, visible=False)
    stage_text = ft.Text("", size=12)
    play_btn = ft.ElevatedButton("Play", icon=ft.Icons.PLAY_ARROW, on_click=lambda _e: start_playback(False), disabled=True)
    pause_btn = ft.OutlinedButton("Pause", icon=ft.Icons.PAUSE, on_click=lambda _e: stop_playback(), disabled=True)
    preview_btn = ft.OutlinedButton("Preview Selection", icon=ft.Icons.SLOW_MOTION_VIDEO, on_click=preview_selection, disabled=True)
    process_btn = ft.FilledButton("Process Video", icon=ft.Icons.MOVIE_EDIT, disabled=True)
    result_btn = ft.OutlinedButton("Preview Result", icon=ft.Icons.ONDEMAND_VIDEO, disabled=True)
    save_copy_btn = ft.OutlinedButton("Save Copy...", icon=ft.Icons.DOWNLOAD, disabled=True)
    file_picker = ft.FilePicker()

    def refresh_buttons() -> None:
        busy = session is not None and session.tracker.running
        loaded = session is not None and session.loaded
        has_output = session is not None and session.last_output_path is not None
        process_btn.disabled = not (session is not None and session.can_process)
        play_btn.disabled = busy or not loaded
        pause_btn.disabled = busy or not loaded
        preview_btn.disabled = busy or not loaded
        result_btn.disabled = busy or not has_output
        save_copy_btn.disabled = busy or not has_output
        for c in (volume_slider, fade_in_slider, fade_out_slider, speed_slider, quality_dd, load_btn, file_id_field):
            c.disabled = busy

    def process_click(_e=None) -> None:
        nonlocal process_future
        if session is None or not session.can_process:
            if not engine.is_ready:
                snack("ffmpeg is not ready yet")
            return
        stop_playback()
        sess = session

        async def _run() -> None:
            try:
                file_id = await sess.process()
                snack(f"Uploaded edited video: {file_id}")
            except DriveTrimError as ex:
                # Tracker already carries the failure label; validation errors leave it untouched.
                snack(ex.user_message())
            except Exception as ex:
                log.exception("process failed: %s", ex)
                snack(f"Processing failed: {ex}")
            finally:
                refresh_buttons()
                try:
                    page.update()
                except Exception:
                    pass

        process_future = page.run_task(_run)

    process_btn.on_click = process_click

    def preview_result_click(_e=None) -> None:
        if session is None or session.last_output_path is None:
            return
        stop_playback()
        result_video = ftv.Video(
            expand=True,
            playlist=[ftv.VideoMedia(str(session.last_output_path))],
            autoplay=True,
            show_controls=True,
        )
        page.show_dialog(
            ft.AlertDialog(
                title=ft.Text("Processed video"),
                content=ft.Container(result_video, width=640, height=360, bgcolor=ft.Colors.BLACK),
                actions=[ft.TextButton("Close", on_click=lambda _e: page.pop_dialog())],
            )
        )

    def save_copy_click(_e=None) -> None:
        if session is None or session.last_output_path is None:
            return
        sess = session

        async def _save() -> None:
            out_path = await file_picker.save_file(
                file_name=sess.copy_name,
                file_type=ft.FilePickerFileType.CUSTOM,
                allowed_extensions=["mp4"],
            )
            if not out_path:
                return
            try:
                dest = await asyncio.to_thread(sess.save_output_copy, str(Path(out_path).with_suffix(".mp4")))
                snack(f"Saved: {dest.name}")
            except Exception as ex:
                log.exception("save copy failed: %s", ex)
                snack(f"Save failed: {ex}")

        page.run_task(_save)

    result_btn.on_click = preview_result_click
    save_copy_btn.on_click = save_copy_click

    # ---------- loading ----------
    file_id_field = ft.TextField(label="Drive file id", width=360, dense=True, value=cfg.last_file_id())
    load_btn = ft.ElevatedButton("Load", icon=ft.Icons.CLOUD_DOWNLOAD)

    def _on_field_focus(_e) -> None:
        nonlocal typing_shortcuts_blocked
        typing_shortcuts_blocked = True

    def _on_field_blur(_e) -> None:
        nonlocal typing_shortcuts_blocked
        typing_shortcuts_blocked = False

    file_id_field.on_focus = _on_field_focus
    file_id_field.on_blur = _on_field_blur

    def _on_video_loaded(_e) -> None:
        if session is None or timeline.duration > 0 or preview_video is None:
            return

        async def _read_duration() -> None:
            try:
                d = await preview_video.get_duration()
                sec = float(getattr(d, "in_milliseconds", d) or 0) / 1000.0
            except Exception:
                return
            session.apply_player_duration(sec)
            rebuild_markers()
            _show_media_info()
            refresh_buttons()
            update_timeline_ui()

        page.run_task(_read_duration)

    def load_click(_e=None) -> None:
        nonlocal session, preview_video
        fid = str(file_id_field.value or "").strip()
        if not fid:
            snack("Enter a Drive file id")
            return
        if not drive.is_authorized:
            snack(f"Not authenticated: set {TOKEN_ENV}")
            return
        stop_playback()
        if session is not None:
            session.close()
        timeline.set_disabled(False)
        session = EditSession(
            fid,
            drive,
            engine,
            output_folder_id=cfg.output_folder_id(),
            tick_sec=cfg.progress_tick_sec(),
            temp_root=cfg.temp_dir(),
            timeline=timeline,
        )
        session.tracker.on_change = _on_processing_state
        sess = session
        stage_text.value = STAGE_LOADING
        load_btn.disabled = True
        page.update()

        async def _load() -> None:
            nonlocal preview_video
            try:
                await sess.ensure_engine()
            except ResourceError as ex:
                log.error("ffmpeg init failed: %s", ex)
                snack(ex.user_message())
            try:
                await sess.load()
            except DriveTrimError as ex:
                log.warning("load failed: %s", ex)
                stage_text.value = ex.user_message()
                snack(ex.user_message())
                return
            except Exception as ex:
                log.exception("load failed: %s", ex)
                stage_text.value = f"Load failed: {ex}"
                return
            finally:
                load_btn.disabled = False
                page.update()
            cfg.set_last_file_id(fid)
            reset_controls()
            stage_text.value = ""
            preview_video = ftv.Video(
                expand=True,
                playlist=[ftv.VideoMedia(str(sess.source_path))],
                autoplay=False,
                show_controls=False,
                on_loaded=_on_video_loaded,
            )
            preview_slot.content = preview_video
            rebuild_markers()
            _show_media_info()
            refresh_buttons()
            update_timeline_ui()

        page.run_task(_load)

    load_btn.on_click = load_click

    # ---------- keyboard ----------
    def _show_shortcuts_dialog() -> None:
        rows = [ft.Row([ft.Text(k, width=170, weight=ft.FontWeight.BOLD), ft.Text(v)]) for k, v in shortcut_legend()]
        page.show_dialog(ft.AlertDialog(title=ft.Text("Keyboard shortcuts"), content=ft.Column(rows, tight=True)))

    def on_keyboard(e: ft.KeyboardEvent) -> None:
        action = resolve_shortcut_action(
            key=str(getattr(e, "key", "") or ""),
            ctrl=bool(getattr(e, "ctrl", False)),
            shift=bool(getattr(e, "shift", False)),
            alt=bool(getattr(e, "alt", False)),
            meta=bool(getattr(e, "meta", False)),
            typing_focus=bool(typing_shortcuts_blocked),
        )
        if not action:
            return
        if action == ACTION_SHOW_SHORTCUTS:
            _show_shortcuts_dialog()
            return
        if session is None or not session.loaded:
            return
        if action == ACTION_TOGGLE_PLAY_PAUSE:
            toggle_play()
        elif action == ACTION_PREVIEW:
            preview_selection()
        elif action == ACTION_PROCESS:
            process_click()
        elif action == ACTION_SET_START:
            timeline.set_start_at_playhead()
        elif action == ACTION_SET_END:
            timeline.set_end_at_playhead()
        elif action == ACTION_RESET_TRIM and not timeline.disabled:
            timeline.reset()
        elif action in (ACTION_FRAME_BACK, ACTION_FRAME_FORWARD):
            stop_playback()
            timeline.step_playhead(-1 if action == ACTION_FRAME_BACK else 1, _fps())
            _seek_video_to_playhead()
        elif action in (ACTION_SECOND_BACK, ACTION_SECOND_FORWARD):
            stop_playback()
            timeline.nudge_playhead(-1.0 if action == ACTION_SECOND_BACK else 1.0)
            _seek_video_to_playhead()

    page.on_keyboard_event = on_keyboard

    # ---------- layout ----------
    labels_row = ft.Row([start_label, sel_label, end_label], alignment=ft.MainAxisAlignment.SPACE_BETWEEN, width=TRACK_W)
    timeline_panel = ft.Column(
        [
            labels_row,
            timeline_surface,
            marker_row,
            ft.Row([play_btn, pause_btn, preview_btn, position_text], spacing=10),
        ],
        spacing=6,
    )
    controls_panel = ft.Column(
        [
            ft.Text("Audio", weight=ft.FontWeight.BOLD),
            volume_label,
            volume_slider,
            fade_in_label,
            fade_in_slider,
            fade_out_label,
            fade_out_slider,
            ft.Divider(height=8),
            ft.Text("Video", weight=ft.FontWeight.BOLD),
            speed_label,
            speed_slider,
            quality_dd,
            ft.Divider(height=8),
            ops_text,
        ],
        width=320,
        scroll=ft.ScrollMode.AUTO,
    )
    page.add(
        ft.Row(
            [
                file_id_field,
                load_btn,
                ft.Container(expand=True),
                ft.IconButton(icon=ft.Icons.KEYBOARD, tooltip="Shortcuts (F1)", on_click=lambda _e: _show_shortcuts_dialog()),
                process_btn,
            ]
        ),
        ft.Row(
            [
                ft.Column([preview_slot, info_text, timeline_panel, progress_bar, stage_text, ft.Row([result_btn, save_copy_btn], spacing=10)], expand=True),
                ft.VerticalDivider(width=8),
                controls_panel,
            ],
            expand=True,
            vertical_alignment=ft.CrossAxisAlignment.START,
        ),
    )

    def _apply_track_width(width: float) -> None:
        w = max(MIN_TRACK_W, float(width))
        timeline.set_track_width(w)
        for c in (track_bg, track_stack, marker_row, labels_row, progress_bar):
            c.width = w
        update_timeline_ui()

    def on_page_resize(e) -> None:
        width = getattr(e, "width", None) or page.width
        if width:
            _apply_track_width(float(width) - SIDE_PANEL_W)

    def _shutdown(_e=None) -> None:
        nonlocal session, is_playing, playback_loop_id
        is_playing = False
        playback_loop_id += 1
        if process_future is not None and not process_future.done():
            process_future.cancel()
        if session is not None:
            session.close()
            session = None
        engine.dispose()
        log.info("session closed")

    page.on_resize = on_page_resize
    page.on_disconnect = _shutdown
    page.on_close = _shutdown
    if page.width:
        on_page_resize(None)

    if len(sys.argv) > 1 and sys.argv[1].strip():
        file_id_field.value = sys.argv[1].strip()
        load_click()


if __name__ == "__main__":
    ft.app(target=main)
