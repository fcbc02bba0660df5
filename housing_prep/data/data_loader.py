from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.model_selection import train_test_split


class DataLoader:
    """
    DataLoader is a utility class for loading, saving and splitting tabular data.
    It provides static methods to read and write CSV and Parquet files using pandas,
    with logging for traceability and automatic directory creation for saving files.
    """

    @staticmethod
    def load_csv(path: Path) -> pd.DataFrame:
        """
        Load a CSV file from the specified path into a pandas DataFrame.

        Args:
            path (Path): Path to the CSV file to load.

        Returns:
            pd.DataFrame: DataFrame containing the loaded data.
        """
        logger.info(f"Loading CSV: {path}")
        return pd.read_csv(path)

    @staticmethod
    def save_csv(df: pd.DataFrame, path: Path) -> Path:
        """
        Save a pandas DataFrame to a CSV file at the specified path.
        Automatically creates parent directories if they do not exist.

        Args:
            df (pd.DataFrame): DataFrame to save.
            path (Path): Path to save the CSV file.

        Returns:
            Path: The path where the CSV file was saved.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
        logger.info(f"Saved CSV: {path}")
        return path

    @staticmethod
    def save_parquet(df: pd.DataFrame, path: Path) -> Path:
        """
        Save a pandas DataFrame to a Parquet file at the specified path.
        Automatically creates parent directories if they do not exist.

        Args:
            df (pd.DataFrame): DataFrame to save.
            path (Path): Path to save the Parquet file.

        Returns:
            Path: The path where the Parquet file was saved.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(path, index=False)
        logger.info(f"Saved Parquet: {path}")
        return path

    @staticmethod
    def log_outcome(df: pd.DataFrame, outcome: str) -> pd.DataFrame:
        """
        Return a copy of `df` with the outcome replaced by its log10.

        The outcome is transformed before splitting, outside of any
        preprocessing pipeline, because it has no learned parameters.
        """
        if (df[outcome] <= 0).any():
            raise ValueError(f"Outcome '{outcome}' has non-positive values; cannot take log10")
        df = df.copy()
        df[outcome] = np.log10(df[outcome])
        return df

    @staticmethod
    def split_train_test(
        df: pd.DataFrame,
        outcome: str,
        test_size: float = 0.2,
        random_state: int = 502,
        stratify_bins: Optional[int] = 4
    ) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Split a dataset into training and test sets.

        When `stratify_bins` is set the split is stratified on quantile bins of
        the outcome so both sets cover its full distribution.

        Args:
            df (pd.DataFrame): Full dataset.
            outcome (str): Outcome column used for stratification.
            test_size (float): Proportion of rows held out for testing.
            random_state (int): Random seed.
            stratify_bins (Optional[int]): Number of outcome quantile bins, or None.

        Returns:
            Tuple[pd.DataFrame, pd.DataFrame]: (train, test)
        """
        strata = None
        if stratify_bins:
            strata = pd.qcut(df[outcome], q=stratify_bins, labels=False, duplicates="drop")

        train, test = train_test_split(
            df,
            test_size=test_size,
            random_state=random_state,
            stratify=strata
        )
        logger.info(f"Train set: {train.shape}, Test set: {test.shape}")
        return train, test


__all__ = ["DataLoader"]
