"""Hypothesis strategies for property-based testing."""

from hypothesis import strategies as st

from frameops.models.alignment import FrameMatch, MatchCandidate
from frameops.models.frames import ExtractedFrame, format_timestamp
from frameops.models.sop import SynthesizedStep


@st.composite
def generate_frames(draw, min_size: int = 1, max_size: int = 60):
    """Generate frames with strictly increasing timestamps."""
    gaps = draw(
        st.lists(
            st.floats(min_value=0.05, max_value=30.0),
            min_size=min_size,
            max_size=max_size,
        )
    )
    frames = []
    t = draw(st.floats(min_value=0.0, max_value=5.0))
    for i, gap in enumerate(gaps):
        frames.append(
            ExtractedFrame(
                index=i,
                timestamp_seconds=round(t, 3),
                image_base64="QUJD",
                timestamp_label=format_timestamp(t),
            )
        )
        t += gap
    return frames


@st.composite
def generate_steps(draw, min_size: int = 0, max_size: int = 60):
    """Generate synthesized steps anchored positionally."""
    n = draw(st.integers(min_value=min_size, max_value=max_size))
    return [
        SynthesizedStep(title=f"Step {i + 1}", source_frame_index=i) for i in range(n)
    ]


@st.composite
def generate_matches(draw, step_count: int, frame_count: int):
    """Generate matcher output, including out-of-range and missing candidates."""
    matches = []
    for i in range(step_count):
        candidates = draw(
            st.lists(
                st.builds(
                    MatchCandidate,
                    frame_index=st.integers(min_value=0, max_value=frame_count + 3),
                    score=st.floats(min_value=-1.0, max_value=1.0, allow_nan=False),
                ),
                max_size=3,
            )
        )
        matches.append(FrameMatch(step_index=i, candidates=candidates))
    return matches


def generate_raw_frames(timestamps: list[float]) -> list[dict]:
    """Extractor service payloads for the given (possibly unordered) timestamps."""
    return [
        {"imageBase64": "QUJD", "timestampSeconds": t, "timestamp": format_timestamp(t)}
        for t in timestamps
    ]
