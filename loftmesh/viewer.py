"""
Interactive pyglet preview of a LoftSession.

Uses OpenGL immediate-mode client arrays through pyglet's low-level GL
bindings (pyglet 1.5), so no shader code is needed.

  left-drag        orbit
  right-drag       pan
  scroll           zoom
  shift+left-drag  move the selected anchor's radius
  [ / ]            select previous / next anchor
  S                toggle smooth / corner on the selected anchor
  A                auto-rotate
  E                export
  R                reset camera
  Q / Esc          quit
"""

import ctypes
import logging
import math
import time
from typing import Optional

import numpy as np

from .export import ExportError
from .session import BuildResult, LoftSession

logger = logging.getLogger(__name__)

BASE_COLOUR = (0.78, 0.70, 0.55)
BACKGROUND = (0.15, 0.15, 0.18, 1.0)
LIGHT_POSITION = (4.0, 6.0, 8.0, 0.0)
LIGHT_DIFFUSE = (0.9, 0.9, 0.85, 1.0)
LIGHT_AMBIENT = (0.25, 0.25, 0.28, 1.0)
ANCHOR_DRAG_SPEED = 0.01


def vertex_colours(result: BuildResult, session: LoftSession) -> np.ndarray:
    """
    Per-vertex RGB for body then caps.  The base colour is modulated by the
    height map (body only) according to the texture opacity.
    """
    body, bottom, top = result.parts
    n = body.vertex_count + len(bottom.positions) + len(top.positions)
    colours = np.tile(np.asarray(BASE_COLOUR, dtype=np.float32), (n, 1))
    hf = session.height_field
    opacity = float(np.clip(session.params.texture_opacity, 0.0, 1.0))
    if hf is not None and hf.decoded and opacity > 0:
        grey = hf.sample(body.uvs[:, 0], body.uvs[:, 1],
                         session.params.texture_repeat_u, session.params.texture_repeat_v)
        shade = (1.0 - opacity) + opacity * grey
        colours[:body.vertex_count] *= shade[:, None].astype(np.float32)
    return colours


def flatten(result: BuildResult, session: LoftSession) -> dict:
    """One contiguous set of GL arrays covering body and both caps."""
    verts, norms, idx = [], [], []
    offset = 0
    for part in result.parts:
        verts.append(part.positions)
        norms.append(part.normals)
        idx.append(np.asarray(part.indices) + offset)
        offset += len(part.positions)
    return {
        "verts": np.concatenate(verts).astype(np.float32).ravel(),
        "normals": np.concatenate(norms).astype(np.float32).ravel(),
        "colours": vertex_colours(result, session).ravel(),
        "indices": np.concatenate(idx).astype(np.uint32).ravel(),
    }


def run_viewer(session: LoftSession, out_path: str, export_fmt: Optional[str] = None):
    """Open the preview window; returns when it is closed."""
    try:
        import pyglet
        from pyglet.gl import (
            glEnable, glDisable, glClearColor, glClear, glLoadIdentity,
            glMatrixMode, glLoadMatrixf, glTranslatef, glRotatef,
            glEnableClientState, glDisableClientState,
            glVertexPointer, glNormalPointer, glColorPointer, glDrawElements,
            glLightfv, glColorMaterial, glViewport,
            GL_TRIANGLES, GL_UNSIGNED_INT, GL_FLOAT,
            GL_VERTEX_ARRAY, GL_NORMAL_ARRAY, GL_COLOR_ARRAY,
            GL_COLOR_BUFFER_BIT, GL_DEPTH_BUFFER_BIT,
            GL_DEPTH_TEST, GL_LIGHTING, GL_LIGHT0, GL_CULL_FACE,
            GL_PROJECTION, GL_MODELVIEW, GL_COLOR_MATERIAL,
            GL_AMBIENT_AND_DIFFUSE, GL_FRONT_AND_BACK,
            GL_POSITION, GL_DIFFUSE, GL_AMBIENT,
            GLfloat,
        )
    except ImportError:
        logger.warning("[viewer] pyglet not installed – skipping viewer.")
        logger.warning("         Run:  pip install 'pyglet<2'")
        return

    height = session.params.height
    cam = {
        "yaw": 0.0, "pitch": 15.0, "dist": max(4.0, height * 2.5),
        "pan_x": 0.0, "pan_y": -height * 0.5,
    }
    init_cam = dict(cam)
    ui = {"anchor": 1, "dragging_anchor": False, "auto_rotate": False}
    buffers = {"result": None, "arrays": None}

    try:
        config = pyglet.gl.Config(double_buffer=True, depth_size=24, samples=4)
        window = pyglet.window.Window(
            width=1280, height=720, resizable=True, config=config,
            caption="loftmesh  |  drag=orbit  right-drag=pan  scroll=zoom  "
                    "shift-drag=anchor  E=export  R=reset  Q=quit")
    except pyglet.window.NoSuchConfigException:
        window = pyglet.window.Window(width=1280, height=720, caption="loftmesh",
                                      resizable=True)

    def current_arrays() -> dict:
        result = session.current()
        if buffers["result"] is not result:
            buffers["result"] = result
            buffers["arrays"] = flatten(result, session)
        return buffers["arrays"]

    def pointer(arr: np.ndarray):
        return arr.ctypes.data_as(ctypes.c_void_p)

    @window.event
    def on_draw():
        arrays = current_arrays()
        window.clear()
        glClearColor(*BACKGROUND)
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)

        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        aspect = window.width / max(window.height, 1)
        near, far = 0.01, max(100.0, height * 20)
        f = 1.0 / math.tan(math.radians(45.0) / 2)
        glLoadMatrixf((GLfloat * 16)(
            f / aspect, 0, 0, 0,
            0, f, 0, 0,
            0, 0, (far + near) / (near - far), -1,
            0, 0, (2 * far * near) / (near - far), 0,
        ))

        glMatrixMode(GL_MODELVIEW)
        glLoadIdentity()
        glTranslatef(cam["pan_x"], cam["pan_y"], -cam["dist"])
        glRotatef(cam["pitch"], 1, 0, 0)
        glRotatef(cam["yaw"], 0, 1, 0)

        glEnable(GL_DEPTH_TEST)
        glEnable(GL_CULL_FACE)
        glEnable(GL_LIGHTING)
        glEnable(GL_LIGHT0)
        glEnable(GL_COLOR_MATERIAL)
        glColorMaterial(GL_FRONT_AND_BACK, GL_AMBIENT_AND_DIFFUSE)
        glLightfv(GL_LIGHT0, GL_POSITION, (GLfloat * 4)(*LIGHT_POSITION))
        glLightfv(GL_LIGHT0, GL_DIFFUSE, (GLfloat * 4)(*LIGHT_DIFFUSE))
        glLightfv(GL_LIGHT0, GL_AMBIENT, (GLfloat * 4)(*LIGHT_AMBIENT))

        glEnableClientState(GL_VERTEX_ARRAY)
        glEnableClientState(GL_NORMAL_ARRAY)
        glEnableClientState(GL_COLOR_ARRAY)
        glVertexPointer(3, GL_FLOAT, 0, pointer(arrays["verts"]))
        glNormalPointer(GL_FLOAT, 0, pointer(arrays["normals"]))
        glColorPointer(3, GL_FLOAT, 0, pointer(arrays["colours"]))
        glDrawElements(GL_TRIANGLES, len(arrays["indices"]), GL_UNSIGNED_INT,
                       pointer(arrays["indices"]))
        glDisableClientState(GL_VERTEX_ARRAY)
        glDisableClientState(GL_NORMAL_ARRAY)
        glDisableClientState(GL_COLOR_ARRAY)

        glDisable(GL_LIGHTING)
        glDisable(GL_CULL_FACE)
        glDisable(GL_DEPTH_TEST)

    @window.event
    def on_mouse_press(x, y, button, modifiers):
        from pyglet.window import key, mouse
        if button == mouse.LEFT and modifiers & key.MOD_SHIFT:
            ui["dragging_anchor"] = True
            session.begin_drag()

    @window.event
    def on_mouse_release(x, y, button, modifiers):
        if ui["dragging_anchor"]:
            ui["dragging_anchor"] = False
            session.end_drag()

    @window.event
    def on_mouse_drag(x, y, dx, dy, buttons, modifiers):
        from pyglet.window import mouse
        if ui["dragging_anchor"]:
            i = ui["anchor"]
            a = session.profile.anchors[i]
            session.move_anchor(i, a.radius + dx * ANCHOR_DRAG_SPEED, a.height)
        elif buttons & mouse.LEFT:
            cam["yaw"] += dx * 0.4
            cam["pitch"] = max(-89, min(89, cam["pitch"] - dy * 0.4))
        elif buttons & mouse.RIGHT:
            cam["pan_x"] += dx * 0.005 * cam["dist"]
            cam["pan_y"] += dy * 0.005 * cam["dist"]

    @window.event
    def on_mouse_scroll(x, y, scroll_x, scroll_y):
        cam["dist"] -= scroll_y * 0.15 * cam["dist"]
        cam["dist"] = max(0.1, min(max(50.0, height * 10), cam["dist"]))

    @window.event
    def on_key_press(symbol, modifiers):
        from pyglet.window import key
        n = len(session.profile.anchors)
        if symbol in (key.Q, key.ESCAPE):
            window.close()
        elif symbol == key.R:
            cam.update(init_cam)
        elif symbol == key.A:
            ui["auto_rotate"] = not ui["auto_rotate"]
            logger.info("[viewer] Auto-rotate: %s", "ON" if ui["auto_rotate"] else "OFF")
        elif symbol == key.BRACKETLEFT:
            ui["anchor"] = (ui["anchor"] - 1) % n
            logger.info("[viewer] anchor %d selected", ui["anchor"])
        elif symbol == key.BRACKETRIGHT:
            ui["anchor"] = (ui["anchor"] + 1) % n
            logger.info("[viewer] anchor %d selected", ui["anchor"])
        elif symbol == key.S:
            state = session.toggle_anchor_smooth(ui["anchor"])
            logger.info("[viewer] anchor %d smooth: %s", ui["anchor"], state)
        elif symbol == key.E:
            try:
                session.export(out_path, export_fmt)
            except ExportError as e:
                logger.error("[error] %s", e)

    @window.event
    def on_resize(width, height_px):
        glViewport(0, 0, width, height_px)

    logger.info("[viewer] Opening 3D viewer …  (E=export  R=reset  Q/Esc=quit)")
    window.has_exit = False
    prev_t = time.perf_counter()
    while not window.has_exit:
        now_t = time.perf_counter()
        dt = now_t - prev_t
        prev_t = now_t
        if ui["auto_rotate"]:
            cam["yaw"] += 20.0 * dt
        pyglet.clock.tick()
        # finished texture decodes are applied (and rebuilt) on the GL thread
        session.poll()
        window.switch_to()
        window.dispatch_events()
        if window.has_exit:
            break
        window.dispatch_event("on_draw")
        window.flip()
