import json, math, random, uuid
from datetime import datetime, timezone
from pathlib import Path

from pool_core import (
    Kind,
    RecordWriter,
    matrix,
    scalar,
    vector,
    write_array,
    write_payload_values,
    write_property,
)

# --- CONFIGURATION ---
DT = 0.02  # seconds per frame
GRAVITY = -9.81
RESTITUTION = 0.8
BOX = 10.0  # particles live in [0, BOX]^3

# Property ids. Time is written first in every frame.
PROP_TIME = 0
PROP_POSITION = 1
PROP_VELOCITY = 2
PROP_BOUNCED = 3
PROP_ORIENTATION = 4

TIME_FMT = scalar(Kind.F64)
VEC3_FMT = vector(Kind.F32, 3)
FLAG_FMT = scalar(Kind.U8)
MAT3_FMT = matrix(Kind.F32, 3, 3)


def runs(ids):
    """Split sorted instance ids into (start, length) runs of consecutive ids."""
    out = []
    for i in ids:
        if out and out[-1][0] + out[-1][1] == i:
            out[-1][1] += 1
        else:
            out.append([i, 1])
    return [tuple(r) for r in out]


class ParticleRecorder:
    def __init__(self, file_handle):
        self.w = RecordWriter(file_handle)
        self.frames = 0

    def push(self, t, pos, vel, bounced):
        """
        Record one frame.
        Full arrays for position and velocity.
        Bounce flags only for the instances that bounced, one payload per run.
        """
        write_property(self.w, PROP_TIME, TIME_FMT, t)
        write_array(self.w, PROP_POSITION, VEC3_FMT, pos)
        write_array(self.w, PROP_VELOCITY, VEC3_FMT, vel)

        if bounced:
            self.w.write_header(FLAG_FMT.tag, PROP_BOUNCED)
            for start, n in runs(sorted(bounced)):
                write_payload_values(self.w, FLAG_FMT, [1] * n, offset_instance_id=start)
            self.w.end_property()

        self.frames += 1

    def close(self, truncate=False):
        """End the stream. With truncate, leave it torn instead (no end marker)."""
        if not truncate:
            self.w.write_end()


def step(pos, vel):
    """Advance one frame of ballistic motion with walls. Returns bounced ids."""
    bounced = set()
    for i, (p, v) in enumerate(zip(pos, vel)):
        v = [v[0], v[1], v[2] + GRAVITY * DT]
        p = [p[k] + v[k] * DT for k in range(3)]
        for k in range(3):
            if p[k] < 0.0:
                p[k], v[k] = -p[k], -v[k] * RESTITUTION
                bounced.add(i)
            elif p[k] > BOX:
                p[k], v[k] = 2 * BOX - p[k], -v[k] * RESTITUTION
                bounced.add(i)
        pos[i], vel[i] = p, v
    return bounced


def generate_session(out_dir, frames=100, particles=16, seed=None, truncate=False):
    sess_id = str(uuid.uuid4())
    path = Path(out_dir) / f"session-{sess_id[:8]}"
    path.mkdir(parents=True, exist_ok=True)

    rng = random.Random(seed)
    pos = [[rng.uniform(0, BOX) for _ in range(3)] for _ in range(particles)]
    vel = [[rng.uniform(-2, 2) for _ in range(3)] for _ in range(particles)]

    print(f"Generating: {sess_id} (Frames={frames}, Particles={particles}, Truncate={truncate})")

    with open(path / "particles.pool", "wb") as f:
        recorder = ParticleRecorder(f)

        # Static data once, before the first frame
        angle = math.pi / 4
        c, s = math.cos(angle), math.sin(angle)
        write_array(recorder.w, PROP_ORIENTATION, MAT3_FMT, [((c, -s, 0.0), (s, c, 0.0), (0.0, 0.0, 1.0))])

        bounced = set()
        for frame_id in range(frames):
            recorder.push(frame_id * DT, pos, vel, bounced)
            bounced = step(pos, vel)

        recorder.close(truncate=truncate)

    if truncate:
        # Torn write: drop the tail of the last record too
        data = (path / "particles.pool").read_bytes()
        (path / "particles.pool").write_bytes(data[:-3])

    (path / "meta.json").write_text(json.dumps({
        "session_id": sess_id,
        "frames": frames,
        "particles": particles,
        "dt": DT,
        "properties": {
            "time": PROP_TIME,
            "position": PROP_POSITION,
            "velocity": PROP_VELOCITY,
            "bounced": PROP_BOUNCED,
            "orientation": PROP_ORIENTATION,
        },
        "started_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }, indent=2) + "\n", encoding="utf-8")

    print(f"GENERATED: {path}")
    return path


if __name__ == "__main__":
    import sys

    # Usage:
    #   python tools/sim_particles.py OUT_DIR [--frames N] [--particles N] [--seed N] [--truncate]

    args = [a for a in sys.argv[1:] if a]

    def pop_flag(arg_list: list[str], flag: str) -> tuple[bool, list[str]]:
        """Remove a boolean flag from an argv-style list."""
        if flag in arg_list:
            return True, [a for a in arg_list if a != flag]
        return False, arg_list

    def pop_int(arg_list: list[str], opt: str, default):
        if opt not in arg_list:
            return default, arg_list
        i = arg_list.index(opt)
        if i + 1 >= len(arg_list):
            raise SystemExit(f"{opt} requires a value")
        return int(arg_list[i + 1]), arg_list[:i] + arg_list[i + 2:]

    truncate, args = pop_flag(args, "--truncate")
    frames, args = pop_int(args, "--frames", 100)
    particles, args = pop_int(args, "--particles", 16)
    seed, args = pop_int(args, "--seed", None)

    out = args[0] if len(args) > 0 else "sessions"
    generate_session(out, frames=frames, particles=particles, seed=seed, truncate=truncate)
