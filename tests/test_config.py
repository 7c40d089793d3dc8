import pytest

from tensor_id.config import DEFAULT_CONFIG, IDConfig, SNormConfig, load_config
from tensor_id.errors import InvalidArgument


def test_defaults():
    config = load_config()
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_yaml_overrides_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("rank: 4\nsketch_dim: 9\nqr_type: srrqr\nsizes: [100, 200]\n")
    config = load_config(str(path))
    assert config["rank"] == 4
    assert config["sketch_dim"] == 9
    assert config["qr_type"] == "srrqr"
    assert config["sizes"] == [100, 200]
    assert config["tol"] == DEFAULT_CONFIG["tol"]


def test_keyword_overrides_win(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("rank: 4\n")
    config = load_config(str(path), rank=7, seed=None)
    assert config["rank"] == 7
    assert config["seed"] is None


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == DEFAULT_CONFIG


def test_unknown_key(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("rank: 4\nlearning_rate: 0.1\n")
    with pytest.raises(InvalidArgument):
        load_config(str(path))


def test_not_a_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(InvalidArgument):
        load_config(str(path))


class TestIDConfig:
    def test_from_dict_ignores_other_keys(self):
        config = IDConfig.from_dict(DEFAULT_CONFIG)
        assert config.rank == DEFAULT_CONFIG["rank"]
        assert config.sketch_dim == DEFAULT_CONFIG["sketch_dim"]
        assert config.to_dict()["qr_type"] == "qr"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"rank": 0, "sketch_dim": 5},
            {"rank": 5, "sketch_dim": 4},
            {"rank": 2, "sketch_dim": 4, "qr_type": "lu"},
            {"rank": 2, "sketch_dim": 4, "sketch": "fourier"},
            {"rank": 2, "sketch_dim": 4, "oversampling_factor": 0.5},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidArgument):
            IDConfig(**kwargs)


class TestSNormConfig:
    def test_from_dict(self):
        config = SNormConfig.from_dict(DEFAULT_CONFIG)
        assert config.tol == DEFAULT_CONFIG["tol"]
        assert config.init == "1"

    @pytest.mark.parametrize("kwargs", [{"tol": -1.0}, {"maxit": 0}, {"init": "random"}])
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidArgument):
            SNormConfig(**kwargs)
