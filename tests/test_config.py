"""
Tests for pipeline configuration loading.
"""

from pathlib import Path

import pytest
import yaml

from resale_studio.config import CanvasConfig, PipelineConfig, QAConfig, load_pipeline_config

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config" / "pipeline.yaml"


class TestDefaults:

    def test_defaults(self):
        config = PipelineConfig()
        assert config.concurrency == 3
        assert config.replacer == "outpaint"
        assert config.qa.ssim_threshold == 0.92
        assert config.qa.mask_threshold == 128
        assert config.costs.mask_generation == 0.04
        assert config.costs.background_replacement == 0.08
        assert config.costs.qa_validation == 0.0
        assert config.canvas.target_aspect_ratio == 1.5
        assert config.canvas.max_dimension == 2048

    def test_comfyui_urls(self):
        config = PipelineConfig.from_dict({"comfyui": {"host": "gpu-box", "port": 9000, "use_https": True}})
        assert config.comfyui.base_url == "https://gpu-box:9000"
        assert config.comfyui.ws_url == "wss://gpu-box:9000/ws"


class TestFromDict:

    def test_nested_sections(self):
        config = PipelineConfig.from_dict({
            "concurrency": 5,
            "qa": {"ssim_threshold": 0.95},
            "canvas": {"fill_color": [10, 20, 30]},
        })
        assert config.concurrency == 5
        assert config.qa == QAConfig(ssim_threshold=0.95)
        assert config.canvas.fill_color == (10, 20, 30)

    def test_round_trip(self):
        config = PipelineConfig(replacer="inpaint", canvas=CanvasConfig(max_dimension=1024))
        assert PipelineConfig.from_dict(config.to_dict()) == config

    @pytest.mark.parametrize("data", [
        {"colour": "red"},
        {"qa": {"ssim": 0.9}},
        {"concurrency": 0},
        {"replacer": "photoshop"},
        {"qa": {"ssim_threshold": 1.5}},
    ])
    def test_invalid_configuration_raises(self, data):
        with pytest.raises(ValueError):
            PipelineConfig.from_dict(data)


class TestLoadPipelineConfig:

    def test_none_gives_defaults(self):
        assert load_pipeline_config() == PipelineConfig()

    def test_passthrough(self):
        config = PipelineConfig(concurrency=1)
        assert load_pipeline_config(config) is config

    def test_yaml_with_pipeline_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"pipeline": {"skip_qa": True, "replacer": "comfyui"}}))
        config = load_pipeline_config(str(path))
        assert config.skip_qa is True
        assert config.replacer == "comfyui"

    def test_flat_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("concurrency: 2\n")
        assert load_pipeline_config(path).concurrency == 2

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_pipeline_config(path) == PipelineConfig()

    def test_shipped_config_is_valid(self):
        config = load_pipeline_config(REPO_CONFIG)
        assert config == PipelineConfig()

    def test_invalid_type_raises(self):
        with pytest.raises(ValueError):
            load_pipeline_config(42)
