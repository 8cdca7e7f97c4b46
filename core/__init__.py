"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- RoundRegistry：回合與隊伍查詢
- Manager：分配、配對、選擇的狀態轉換
- TimeoutResolver：Round 3 的自動分配
- Locks：並發控制工具（row lock、條件更新）
"""
