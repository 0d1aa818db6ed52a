import pytest
from PySide6 import QtCore

from model.scope_model import (
    ScopeModel, ChannelConfig, WaveformParameters, TriggerConfig,
)


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


@pytest.fixture
def quiet_model():
    """Two noiseless channels: 1 kHz sine on CH1, 2 kHz sine on CH2."""
    return ScopeModel(
        channels={
            "ch1": ChannelConfig(waveform=WaveformParameters(frequency=1000.0, amplitude=2.5,
                                                             noise_fraction=0.0)),
            "ch2": ChannelConfig(waveform=WaveformParameters(frequency=2000.0, amplitude=1.0,
                                                             noise_fraction=0.0)),
        },
        trigger=TriggerConfig(mode="auto", edge="rising", level=0.0),
    )
