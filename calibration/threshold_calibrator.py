"""阈值校准模块，利用带标签的图像数据集统计 EAR、MAR 分布并优化判定阈值"""

import argparse
import json
import logging
import math
import os
from datetime import datetime
from typing import List, Optional, Tuple

import cv2
import numpy as np
from sklearn.metrics import accuracy_score, recall_score, roc_curve

from config.loader import DEFAULTS
from detectors.feature_extractor import FeatureExtractor
from models.data_models import CalibrationResult, FeatureSet

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp")

# 子目录名 → 标签
_EAR_DIRS = {"open": "normal", "closed": "closed"}
_MAR_DIRS = {"no_yawn": "normal", "yawn": "yawn"}

_DATASET_DIRS = {
    "kaggle_ddd": (_EAR_DIRS, _MAR_DIRS),
    "mrl_eye": (_EAR_DIRS, {}),
}


def compute_stats(values: list) -> dict:
    """
    计算一组数值的统计信息。

    Args:
        values: 非空浮点数列表

    Returns:
        {"mean": float, "std": float, "min": float, "max": float}
    """
    n = len(values)
    mean = sum(values) / n
    std = math.sqrt(sum((x - mean) ** 2 for x in values) / n)
    return {
        "mean": mean,
        "std": std,
        "min": min(values),
        "max": max(values),
    }


def _youden_threshold(scores: np.ndarray, labels: np.ndarray) -> float:
    """ROC 曲线上 tpr - fpr 最大处的阈值"""
    fpr, tpr, thresholds = roc_curve(labels, scores)
    best_idx = int(np.argmax(tpr - fpr))
    return float(thresholds[best_idx])


class ThresholdCalibrator:
    """加载数据集，统计 EAR/MAR 分布，通过 ROC 分析输出最优阈值"""

    def __init__(self, face_detector=None, extractor: Optional[FeatureExtractor] = None):
        self._face_detector = face_detector
        self._extractor = extractor or FeatureExtractor()
        self._ear_data: List[Tuple[float, str]] = []  # (ear_value, label)
        self._mar_data: List[Tuple[float, str]] = []  # (mar_value, label)
        self._dataset_type: str = ""
        self._calibration_result: Optional[CalibrationResult] = None

    def add_sample(self, features: FeatureSet, ear_label: Optional[str] = None, mar_label: Optional[str] = None):
        """添加一条已提取的特征样本"""
        if ear_label is not None:
            self._ear_data.append((features.ear, ear_label))
        if mar_label is not None:
            self._mar_data.append((features.mar, mar_label))

    def load_dataset(self, dataset_path: str, dataset_type: str) -> None:
        """
        加载数据集并提取 EAR/MAR 值。

        Args:
            dataset_path: 数据集根目录路径
            dataset_type: "kaggle_ddd" | "mrl_eye"
        """
        if not os.path.isdir(dataset_path):
            raise ValueError(f"数据集路径无效: {dataset_path}")
        if dataset_type not in _DATASET_DIRS:
            raise ValueError(f"不支持的数据集类型: {dataset_type}")

        self._dataset_type = dataset_type
        ear_dirs, mar_dirs = _DATASET_DIRS[dataset_type]

        owns_detector = self._face_detector is None
        if owns_detector:
            from detectors.face_detector import FaceDetector
            self._face_detector = FaceDetector(static_image_mode=True)

        try:
            for subdir, label in ear_dirs.items():
                self._process_dir(os.path.join(dataset_path, subdir), ear_label=label)
            for subdir, label in mar_dirs.items():
                self._process_dir(os.path.join(dataset_path, subdir), mar_label=label)
        finally:
            if owns_detector:
                self._face_detector.close()
                self._face_detector = None

        logger.info(
            "数据集加载完成: EAR 样本 %d 条, MAR 样本 %d 条",
            len(self._ear_data),
            len(self._mar_data),
        )

    def _process_dir(self, dir_path: str, ear_label: Optional[str] = None, mar_label: Optional[str] = None) -> None:
        """处理目录中的图像，提取特征"""
        if not os.path.isdir(dir_path):
            logger.warning("子目录不存在: %s", dir_path)
            return
        for filename in sorted(os.listdir(dir_path)):
            if not filename.lower().endswith(_IMAGE_EXTENSIONS):
                continue
            features = self._extract_from_image(os.path.join(dir_path, filename))
            if features is not None:
                self.add_sample(features, ear_label=ear_label, mar_label=mar_label)

    def _extract_from_image(self, filepath: str) -> Optional[FeatureSet]:
        """从单张图像提取特征，无法读取或无人脸时返回 None"""
        image = cv2.imread(filepath)
        if image is None:
            logger.warning("无法读取图像: %s", filepath)
            return None

        landmarks = self._face_detector.detect(image)
        if landmarks is None:
            return None
        return self._extractor.extract(landmarks)

    def compute_statistics(self) -> dict:
        """
        计算各类别的 EAR/MAR 分布统计。

        Returns:
            {
                "ear": {"normal": {mean, std, min, max}, "closed": {...}},
                "mar": {"normal": {mean, std, min, max}, "yawn": {...}},
            }
        """
        result: dict = {"ear": {}, "mar": {}}

        for key, data in (("ear", self._ear_data), ("mar", self._mar_data)):
            groups: dict = {}
            for value, label in data:
                groups.setdefault(label, []).append(value)
            for label, values in groups.items():
                result[key][label] = compute_stats(values)

        return result

    def optimize_thresholds(self) -> CalibrationResult:
        """
        基于 ROC 曲线分析输出最优 EAR 和 MAR 阈值。

        使用 Youden's J statistic (max(tpr - fpr)) 确定最优阈值；
        样本缺少正负两类时保留默认阈值。
        """
        stats = self.compute_statistics()

        # EAR：label "closed" 为正类，闭眼时值低，用 -EAR 作为 score
        ear_optimal, ear_acc, ear_rec = DEFAULTS["ear_threshold"], 0.0, 0.0
        if self._ear_data:
            ear_values = np.array([v for v, _ in self._ear_data])
            ear_labels = np.array([1 if lab == "closed" else 0 for _, lab in self._ear_data])

            if len(np.unique(ear_labels)) == 2:
                ear_optimal = -_youden_threshold(-ear_values, ear_labels)
                # 判定规则为 ear < 阈值，ROC 阈值处的样本本身应判为闭眼
                ear_optimal = float(np.nextafter(ear_optimal, np.inf))
                ear_preds = (ear_values < ear_optimal).astype(int)
                ear_acc = float(accuracy_score(ear_labels, ear_preds))
                ear_rec = float(recall_score(ear_labels, ear_preds))

        # MAR：label "yawn" 为正类，MAR 越高越可能哈欠
        mar_optimal, mar_acc, mar_rec = DEFAULTS["mar_threshold"], 0.0, 0.0
        if self._mar_data:
            mar_values = np.array([v for v, _ in self._mar_data])
            mar_labels = np.array([1 if lab == "yawn" else 0 for _, lab in self._mar_data])

            if len(np.unique(mar_labels)) == 2:
                mar_optimal = _youden_threshold(mar_values, mar_labels)
                # 判定规则为 mar > 阈值
                mar_optimal = float(np.nextafter(mar_optimal, -np.inf))
                mar_preds = (mar_values > mar_optimal).astype(int)
                mar_acc = float(accuracy_score(mar_labels, mar_preds))
                mar_rec = float(recall_score(mar_labels, mar_preds))

        self._calibration_result = CalibrationResult(
            optimal_ear_threshold=float(ear_optimal),
            optimal_mar_threshold=float(mar_optimal),
            ear_accuracy=ear_acc,
            ear_recall=ear_rec,
            mar_accuracy=mar_acc,
            mar_recall=mar_rec,
            ear_distribution=stats.get("ear", {}),
            mar_distribution=stats.get("mar", {}),
        )

        return self._calibration_result

    def export_config(self, output_path: str) -> None:
        """
        导出可被 config.loader.load_config 读取的 JSON 配置文件。

        Args:
            output_path: 输出 JSON 文件路径
        """
        if self._calibration_result is None:
            self.optimize_thresholds()

        result = self._calibration_result

        config = {
            "ear_threshold": result.optimal_ear_threshold,
            "mar_threshold": result.optimal_mar_threshold,
            "head_tilt_threshold": DEFAULTS["head_tilt_threshold"],
            "calibration_info": {
                "ear_accuracy": result.ear_accuracy,
                "ear_recall": result.ear_recall,
                "mar_accuracy": result.mar_accuracy,
                "mar_recall": result.mar_recall,
                "calibrated_at": datetime.now().isoformat(),
                "dataset": self._dataset_type,
            },
        }

        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=4, ensure_ascii=False)

        logger.info("配置文件已导出: %s", output_path)


def main(argv=None):
    parser = argparse.ArgumentParser(description="EAR/MAR 阈值校准")
    parser.add_argument("--dataset", required=True, help="数据集根目录")
    parser.add_argument("--dataset_type", choices=sorted(_DATASET_DIRS), default="kaggle_ddd")
    parser.add_argument("--output", default="calibrated_config.json", help="输出配置文件路径")
    args = parser.parse_args(argv)

    from utils.logger import setup_logging
    setup_logging()

    calibrator = ThresholdCalibrator()
    calibrator.load_dataset(args.dataset, args.dataset_type)
    result = calibrator.optimize_thresholds()
    calibrator.export_config(args.output)
    print(f"EAR 阈值: {result.optimal_ear_threshold:.4f} (accuracy={result.ear_accuracy:.3f})")
    print(f"MAR 阈值: {result.optimal_mar_threshold:.4f} (accuracy={result.mar_accuracy:.3f})")


if __name__ == "__main__":
    main()
