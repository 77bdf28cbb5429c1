from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class IngestionConfig:
    """
    Configuration for the CSV seed pipeline.
    """

    data_dir: Path = Path("data/seed")
    restaurants_filename: str = "restaurants.csv"
    users_filename: str = "users.csv"
    reviews_filename: str = "reviews.csv"

    @property
    def restaurants_path(self) -> Path:
        return self.data_dir / self.restaurants_filename

    @property
    def users_path(self) -> Path:
        return self.data_dir / self.users_filename

    @property
    def reviews_path(self) -> Path:
        return self.data_dir / self.reviews_filename


DEFAULT_INGESTION_CONFIG = IngestionConfig()
